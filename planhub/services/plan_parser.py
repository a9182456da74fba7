# planhub/services/plan_parser.py
"""
Turns the loosely-shaped AI gateway result into a MarketingPlan.

The gateway has nested the plan under different keys across versions, named
the same company fields differently and sometimes returned the JSON wrapped
in markdown or cut short. Everything here is tolerant of that; anything that
still isn't an object after all attempts raises PlanParseError.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from planhub.core.errors import PlanParseError
from planhub.schemas.marketing_plan import (
    NOT_SPECIFIED,
    BrevoHelpScenario,
    CompanySummary,
    MarketingPlan,
    MarketingProgram,
    PlanMetadata,
    ProgramScenario,
    ScenarioMessage,
)
from planhub.services.domain import extract_company_name, normalize_domain

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OPEN_FENCE = re.compile(r"^```(?:json)?\s*\n?([\s\S]+)$")
_GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")
_PROGRAM_DETAILS = re.compile(r"^program_(\d+)_details$")

_EMBEDDED_JSON_FIELDS = ("text", "message", "output", "result", "data")


# =========================
# JSON extraction
# =========================

def _open_structures(text: str) -> Tuple[List[str], bool]:
    """Stack of unclosed '{' / '[' outside strings, plus whether a string is open."""
    stack: List[str] = []
    in_string = False
    escape = False
    for ch in text:
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return stack, in_string


def _repair_truncated(text: str) -> Optional[Dict[str, Any]]:
    cut = max(text.rfind(",\n"), text.rfind("},"), text.rfind("],"))
    # keep at least half of the document
    if cut <= len(text) * 0.5:
        return None

    head = text[:cut]
    if text[cut] in "}]":
        head = text[: cut + 1]
    head = re.sub(r",\s*$", "", head)

    stack, in_string = _open_structures(head)
    if in_string:
        return None
    closers = "".join("}" if ch == "{" else "]" for ch in reversed(stack))

    try:
        repaired = json.loads(head + closers)
    except json.JSONDecodeError:
        return None
    logger.info("Recovered truncated JSON (%d chars kept of %d)", len(head), len(text))
    return repaired if isinstance(repaired, dict) else None


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort decode of a JSON object embedded in free text.

    Handles ```json fences (closed or left open), text around the object,
    trailing garbage after a complete object and documents cut mid-way.
    """
    cleaned = (text or "").strip()

    fenced = _FENCED_BLOCK.search(cleaned)
    if fenced and fenced.group(1):
        cleaned = fenced.group(1).strip()
    else:
        opened = _OPEN_FENCE.match(cleaned)
        if opened and opened.group(1):
            cleaned = opened.group(1).strip()

    start = cleaned.find("{")
    match = _GREEDY_OBJECT.search(cleaned)
    if match:
        candidate = match.group(0)
        try:
            parsed = json.loads(candidate)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError as e:
            logger.debug("Direct decode failed (%s), trying to recover", e)

        # complete object followed by extra braces/text
        try:
            parsed, _end = json.JSONDecoder().raw_decode(candidate)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    if start != -1:
        repaired = _repair_truncated(cleaned[start:])
        if repaired is not None:
            return repaired

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("All JSON extraction attempts failed (preview=%r)", cleaned[:200])
        return None
    return parsed if isinstance(parsed, dict) else None


# =========================
# Content location
# =========================

ContentExtractor = Callable[[Any], Optional[Dict[str, Any]]]


def _at_path(*keys: str) -> ContentExtractor:
    def extract(raw: Any) -> Optional[Dict[str, Any]]:
        current = raw
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                return None
            current = current[key]
        if isinstance(current, str):
            current = extract_json(current)
        return current if isinstance(current, dict) else None

    extract.__name__ = ".".join(keys) or "direct"
    return extract


# Tried in order; the first one that yields an object wins.
CONTENT_EXTRACTORS: List[ContentExtractor] = [
    _at_path("response", "data", "content"),
    _at_path("content"),
    _at_path("response", "data", "content", "json_response"),
    _at_path("content", "json_response"),
    _at_path("result"),
    _at_path("data"),
    _at_path("output"),
    _at_path(),
]


def locate_content(raw: Any) -> Tuple[Dict[str, Any], str]:
    for extractor in CONTENT_EXTRACTORS:
        content = extractor(raw)
        if content is not None:
            return content, extractor.__name__
    raise PlanParseError(
        "Invalid content structure or missing content",
        debug={"type": type(raw).__name__},
    )


def _unwrap_embedded_json(raw: Dict[str, Any]) -> Dict[str, Any]:
    for key in _EMBEDDED_JSON_FIELDS:
        value = raw.get(key)
        if isinstance(value, str):
            nested = extract_json(value)
            if nested and nested.get("company_summary"):
                logger.debug("Plan JSON found in '%s' field", key)
                return nested
    return raw


# =========================
# Field helpers
# =========================

def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "\n".join(_text(v) for v in value if _text(v))
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def resolve_field(raw: Dict[str, Any], *names: str, default: Optional[str] = None) -> Optional[str]:
    """First non-empty value among `names`, in order."""
    for name in names:
        value = _text(raw.get(name))
        if value:
            return value
    return default


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


# =========================
# Sections
# =========================

def parse_company_summary(data: Any, domain_hint: Optional[str] = None) -> CompanySummary:
    website_default = normalize_domain(domain_hint) or "Unknown"
    name_default = extract_company_name(domain_hint)

    if not isinstance(data, dict):
        return CompanySummary(
            name=name_default,
            website=website_default,
            activities=NOT_SPECIFIED,
            target=NOT_SPECIFIED,
        )

    activities = resolve_field(data, "activities", "industry", default=NOT_SPECIFIED)
    target = resolve_field(data, "target", "target_audience", default=NOT_SPECIFIED)

    return CompanySummary(
        name=resolve_field(data, "name", "company_name", default=name_default),
        website=resolve_field(data, "website", default=website_default),
        activities=activities,
        target=target,
        industry=resolve_field(data, "industry", default=activities),
        target_audience=resolve_field(data, "target_audience", default=target),
        nb_employees=_optional_text(data.get("nb_employees")),
        business_model=_optional_text(data.get("business_model")),
        customer_lifecycle_key_steps=data.get("customer_lifecycle_key_steps"),
        linkedin_scrape_status=_optional_text(data.get("linkedin_scrape_status")),
    )


def _ordered_items(data: Any) -> List[Tuple[Optional[str], Any]]:
    if isinstance(data, list):
        return [(None, item) for item in data]
    if isinstance(data, dict):
        # mapping input: insertion order is message/program order
        return list(data.items())
    return []


def parse_message_sequence(data: Any) -> List[ScenarioMessage]:
    messages: List[ScenarioMessage] = []
    for index, (key, item) in enumerate(_ordered_items(data)):
        fallback_title = key or f"Message {index + 1}"
        if isinstance(item, dict):
            messages.append(ScenarioMessage(
                title=resolve_field(item, "title", "name", "subject", default=fallback_title),
                description=_optional_text(item.get("description")),
                content=_optional_text(item.get("content")),
            ))
        elif _text(item):
            messages.append(ScenarioMessage(title=fallback_title, content=_text(item)))
    return messages


def parse_scenarios(data: Any) -> List[ProgramScenario]:
    scenarios: List[ProgramScenario] = []
    for _key, item in _ordered_items(data):
        if not isinstance(item, dict):
            continue
        scenarios.append(ProgramScenario(
            scenario_target=resolve_field(item, "scenario_target", "target", default=""),
            scenario_objective=resolve_field(item, "scenario_objective", "objective", default=""),
            main_messages_ideas=resolve_field(
                item, "main_messages_ideas", "main_message_ideas", "messages", default=""
            ),
            message_sequence=parse_message_sequence(item.get("message_sequence")),
        ))
    return scenarios


def placeholder_programs() -> List[MarketingProgram]:
    """Single stand-in program used when the AI returned none."""
    return [
        MarketingProgram(
            program_name="Marketing Program",
            target=NOT_SPECIFIED,
            objective=NOT_SPECIFIED,
            kpi="",
            description="No program details available",
        )
    ]


def parse_programs(
    data: Any,
    content: Optional[Dict[str, Any]] = None,
    *,
    synthesize_placeholder: bool = True,
) -> List[MarketingProgram]:
    programs: List[MarketingProgram] = []
    for index, (_key, item) in enumerate(_ordered_items(data)):
        fallback_name = f"Program {index + 1}"
        if isinstance(item, str):
            programs.append(MarketingProgram(program_name=item.strip() or fallback_name))
            continue
        if not isinstance(item, dict):
            programs.append(MarketingProgram(program_name=fallback_name))
            continue
        programs.append(MarketingProgram(
            program_name=resolve_field(item, "program_name", "name", default=fallback_name),
            target=resolve_field(item, "target", default=NOT_SPECIFIED),
            objective=resolve_field(item, "objective", default=NOT_SPECIFIED),
            kpi=resolve_field(item, "kpi", default=""),
            description=resolve_field(item, "description", default=""),
            scenarios=parse_scenarios(item.get("scenarios")),
        ))

    if not programs and synthesize_placeholder:
        programs = placeholder_programs()

    if content:
        _merge_program_details(programs, content)

    return programs


def _merge_program_details(programs: List[MarketingProgram], content: Dict[str, Any]) -> None:
    detail_keys = []
    for key in content:
        m = _PROGRAM_DETAILS.match(key)
        if m:
            detail_keys.append((int(m.group(1)), key))
    detail_keys.sort()

    for number, key in detail_keys:
        index = number - 1
        details = content.get(key)
        if not (0 <= index < len(programs)) or not isinstance(details, dict):
            continue

        program = programs[index]
        name = resolve_field(details, "program_name", "name")
        if name:
            program.program_name = name
        if details.get("scenarios"):
            program.scenarios = parse_scenarios(details["scenarios"])


def parse_brevo_help(data: Any) -> List[BrevoHelpScenario]:
    if not isinstance(data, list):
        return []
    items: List[BrevoHelpScenario] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        items.append(BrevoHelpScenario(
            scenario_name=resolve_field(item, "scenario_name", "name", default=""),
            why_brevo_is_better=resolve_field(item, "why_brevo_is_better", "why_better", default=""),
            omnichannel_channels=item.get("omnichannel_channels", item.get("channels")),
            setup_efficiency=resolve_field(item, "setup_efficiency", default=""),
        ))
    return items


def extract_conversation_id(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    response_data = raw.get("response")
    if isinstance(response_data, dict):
        response_data = response_data.get("data")
    nested_meta = response_data.get("metadata") if isinstance(response_data, dict) else None

    candidates = [nested_meta, raw.get("metadata"), raw]
    for holder in candidates:
        if isinstance(holder, dict) and holder.get("conversation_id"):
            return str(holder["conversation_id"])
    return None


# =========================
# Entry point
# =========================

def parse_plan_data(
    raw: Any,
    domain_hint: Optional[str] = None,
    *,
    synthesize_placeholder: bool = True,
) -> MarketingPlan:
    if raw is None or raw == "":
        raise PlanParseError("Response data is empty")

    if isinstance(raw, str):
        decoded = extract_json(raw)
        if decoded is None:
            raise PlanParseError(
                "Invalid response: received string that is not valid JSON. "
                f"First 200 chars: {raw[:200]}",
                debug={"type": "str", "preview": raw[:500]},
            )
        raw = decoded

    if not isinstance(raw, dict):
        raise PlanParseError(
            "Invalid content structure or missing content",
            debug={"type": type(raw).__name__, "preview": str(raw)[:500]},
        )

    conversation_id = extract_conversation_id(raw)
    payload = _unwrap_embedded_json(raw)
    content, content_path = locate_content(payload)
    logger.debug("Plan content found via '%s' (keys=%s)", content_path, list(content.keys())[:20])

    return MarketingPlan(
        company_summary=parse_company_summary(content.get("company_summary"), domain_hint),
        programs_list=parse_programs(
            content.get("programs_list"),
            content,
            synthesize_placeholder=synthesize_placeholder,
        ),
        introduction=_text(content.get("introduction")),
        conclusion=_text(content.get("conclusion")),
        tools_used=content.get("tools_used") or "",
        how_brevo_helps_you=parse_brevo_help(content.get("how_brevo_helps_you")),
        metadata=PlanMetadata(
            conversation_id=conversation_id or extract_conversation_id(payload),
            raw_content_structure={
                "content_keys": list(content.keys()),
                "program_detail_keys": [
                    k for k in content if "program_" in k and "details" in k
                ],
                "content_path": content_path,
            },
        ),
    )
