# planhub/services/prompts.py
from __future__ import annotations

from typing import Dict, Mapping, Optional

B2B_INDUSTRIES = ("SaaS", "Services", "Manufacturing", "Wholesale")

PLAN_JSON_FORMAT = """{
  "introduction": "Brief overview of the plan",
  "company_summary": {
    "name": "Company name",
    "website": "{domain}",
    "activities": "Main activities",
    "target": "Primary target audience",
    "industry": "Industry",
    "target_audience": "Detailed target description",
    "nb_employees": "Estimated employee count",
    "business_model": "B2B or B2C",
    "customer_lifecycle_key_steps": "Key customer lifecycle stages"
  },
  "programs_list": [
    {
      "program_name": "Program Name",
      "target": "Target audience for this program",
      "objective": "Main objective",
      "kpi": "Key performance indicator",
      "description": "Program description",
      "scenarios": [
        {
          "scenario_target": "Specific target",
          "scenario_objective": "Scenario objective",
          "main_messages_ideas": "Key messages",
          "message_sequence": [
            { "title": "Message 1", "description": "When to send", "content": "Message content" }
          ]
        }
      ]
    }
  ],
  "how_brevo_helps_you": [
    {
      "scenario_name": "Scenario",
      "why_brevo_is_better": "Why Brevo is the best solution",
      "omnichannel_channels": "Channels to use (Email, SMS, WhatsApp, etc.)",
      "setup_efficiency": "How easy it is to set up"
    }
  ],
  "conclusion": "Closing summary"
}"""

PLAN_TEMPLATES: Dict[str, Dict[str, str]] = {
    "en": {
        "intro": "You are an expert marketing strategist. Analyze the company at {domain} and create a comprehensive marketing relationship plan.",
        "request": "Create a detailed marketing relationship plan for the company at {domain}{industry_clause}.",
        "industry_clause": ", which operates in the {industry} industry",
        "format": "Structure your response as a JSON object with the following format:",
        "closing": "Focus on actionable, specific recommendations. Include 3-5 marketing programs with detailed scenarios.",
    },
    "fr": {
        "intro": "Vous êtes un expert en stratégie marketing. Analysez l'entreprise {domain} et créez un plan marketing relationnel complet.",
        "request": "Créez un plan marketing relationnel détaillé pour l'entreprise {domain}{industry_clause}.",
        "industry_clause": ", qui opère dans le secteur {industry}",
        "format": "Structurez votre réponse en JSON avec le format suivant :",
        "closing": "Concentrez-vous sur des recommandations actionnables et spécifiques. Incluez 3-5 programmes marketing avec des scénarios détaillés.",
    },
    "de": {
        "intro": "Sie sind ein Experte für Marketingstrategie. Analysieren Sie das Unternehmen {domain} und erstellen Sie einen umfassenden Marketing-Beziehungsplan.",
        "request": "Erstellen Sie einen detaillierten Marketing-Beziehungsplan für das Unternehmen {domain}{industry_clause}.",
        "industry_clause": " in der Branche {industry}",
        "format": "Strukturieren Sie Ihre Antwort als JSON-Objekt mit folgendem Format:",
        "closing": "Konzentrieren Sie sich auf umsetzbare, spezifische Empfehlungen. Fügen Sie 3-5 Marketingprogramme mit detaillierten Szenarien hinzu.",
    },
    "es": {
        "intro": "Eres un experto en estrategia de marketing. Analiza la empresa {domain} y crea un plan de marketing relacional completo.",
        "request": "Crea un plan de marketing relacional detallado para la empresa {domain}{industry_clause}.",
        "industry_clause": ", que opera en la industria {industry}",
        "format": "Estructura tu respuesta como un objeto JSON con el siguiente formato:",
        "closing": "Enfócate en recomendaciones específicas y accionables. Incluye 3-5 programas de marketing con escenarios detallados.",
    },
}


def build_plan_prompt(domain: str, language: str = "en", industry: Optional[str] = None) -> str:
    t = PLAN_TEMPLATES.get(language) or PLAN_TEMPLATES["en"]
    industry_clause = t["industry_clause"].format(industry=industry) if industry else ""

    return "\n\n".join([
        t["intro"].format(domain=domain),
        t["request"].format(domain=domain, industry_clause=industry_clause),
        t["format"],
        PLAN_JSON_FORMAT.replace("{domain}", domain),
        t["closing"],
    ])


# =========================
# KPI analysis
# =========================

ANALYSIS_TEMPLATES: Dict[str, Dict[str, str]] = {
    "en": {
        "b2b": "B2B Marketing",
        "b2c": "Retail Strategy",
        "intro": "Your client is a {industry} company in the {business_type} sector with a {price_tier} price positioning.",
        "body": (
            "Here is their performance data compared to market benchmarks:\n\n{data}\n\n"
            "Please analyze this data and provide a strategic report in Markdown format with three sections: "
            "# Executive Summary, # Traffic Light Analysis (2 strengths, 2 critical gaps) and "
            "# Strategic Recommendations (3 actionable initiatives on CRM, automation and channel mix).\n\n"
            "Tone: Professional, insightful, direct. Avoid generic advice."
        ),
    },
    "fr": {
        "b2b": "Marketing B2B",
        "b2c": "Stratégie Retail",
        "intro": "Votre client est une entreprise {industry} dans le secteur {business_type} avec un positionnement prix {price_tier}.",
        "body": (
            "Voici leurs données de performance comparées aux benchmarks du marché :\n\n{data}\n\n"
            "Analysez ces données et fournissez un rapport stratégique en Markdown en trois sections : "
            "# Résumé Exécutif, # Analyse Feux Tricolores (2 points forts, 2 lacunes critiques) et "
            "# Recommandations Stratégiques (3 initiatives actionnables sur le CRM, l'automatisation et le mix canal).\n\n"
            "Ton : Professionnel, perspicace, direct. Évitez les conseils génériques."
        ),
    },
    "de": {
        "b2b": "B2B-Marketing",
        "b2c": "Retail-Strategie",
        "intro": "Ihr Kunde ist ein {industry}-Unternehmen im {business_type}-Sektor mit einer {price_tier} Preispositionierung.",
        "body": (
            "Hier sind ihre Leistungsdaten im Vergleich zu Markt-Benchmarks:\n\n{data}\n\n"
            "Bitte analysieren Sie diese Daten und erstellen Sie einen strategischen Bericht im Markdown-Format mit drei Abschnitten: "
            "# Executive Summary, # Ampel-Analyse (2 Stärken, 2 kritische Lücken) und "
            "# Strategische Empfehlungen (3 umsetzbare Initiativen zu CRM, Automatisierung und Kanal-Mix).\n\n"
            "Ton: Professionell, aufschlussreich, direkt. Vermeiden Sie allgemeine Ratschläge."
        ),
    },
    "es": {
        "b2b": "Marketing B2B",
        "b2c": "Estrategia Retail",
        "intro": "Su cliente es una empresa de {industry} en el sector {business_type} con un posicionamiento de precio {price_tier}.",
        "body": (
            "Aquí están sus datos de rendimiento comparados con los benchmarks del mercado:\n\n{data}\n\n"
            "Analice estos datos y proporcione un informe estratégico en Markdown con tres secciones: "
            "# Resumen Ejecutivo, # Análisis de Semáforo (2 fortalezas, 2 brechas críticas) y "
            "# Recomendaciones Estratégicas (3 iniciativas accionables sobre CRM, automatización y mix de canales).\n\n"
            "Tono: Profesional, perspicaz, directo. Evite consejos genéricos."
        ),
    },
}


def build_analysis_prompt(
    data_lines: str,
    industry: str,
    price_tier: str,
    language: str = "en",
) -> str:
    t = ANALYSIS_TEMPLATES.get(language) or ANALYSIS_TEMPLATES["en"]
    business_type = t["b2b"] if industry in B2B_INDUSTRIES else t["b2c"]

    intro = t["intro"].format(industry=industry, business_type=business_type, price_tier=price_tier)
    return (
        f"You are a Senior {business_type} Consultant.\n"
        f"{intro}\n\n"
        f"{t['body'].format(data=data_lines)}"
    )


def format_kpi_lines(benchmarks: list, user_values: Mapping[str, str], price_tier: str) -> str:
    lines = []
    for kpi in benchmarks:
        value = user_values.get(kpi["id"])
        if not value:
            continue
        r = kpi["ranges"].get(price_tier) or {}
        lines.append(
            f"- {kpi['name']}: User Value = {value}{kpi.get('unit', '')} "
            f"(Market: Low {r.get('low')}, Median {r.get('median')}, High {r.get('high')})"
        )
    return "\n".join(lines)
