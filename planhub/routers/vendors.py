# planhub/routers/vendors.py
from typing import Tuple

from fastapi import APIRouter, Depends, HTTPException

from planhub.deps import get_vendor_catalog
from planhub.schemas.vendors import VendorRecord, VendorSearchIn, VendorSearchOut
from planhub.services.vendor_filters import filter_and_sort, filter_summary

router = APIRouter(prefix="/api/vendors", tags=["vendors"])


@router.post("/search", response_model=VendorSearchOut)
def search_vendors(
    body: VendorSearchIn,
    catalog: Tuple[VendorRecord, ...] = Depends(get_vendor_catalog),
):
    result = filter_and_sort(catalog, body.profile, body.advanced, body.search, body.sort)
    return VendorSearchOut(**result.model_dump(), filter_summary=filter_summary(body.profile, body.advanced))


@router.get("/{vendor_id}", response_model=VendorRecord)
def vendor_detail(
    vendor_id: str,
    catalog: Tuple[VendorRecord, ...] = Depends(get_vendor_catalog),
):
    for v in catalog:
        if v.vendor_id == vendor_id:
            return v
    raise HTTPException(status_code=404, detail={"error": "Vendor not found"})
