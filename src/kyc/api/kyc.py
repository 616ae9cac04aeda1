"""FastAPI router exposing the aggregated KYC lookup."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from kyc.services.aggregation import KycAggregationService
from kyc.services.factories import build_aggregation_service

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["kyc"])


class AggregatedKycData(BaseModel):
    identifier: str
    firstName: str
    lastName: str
    address: str
    phoneNumber: Optional[str] = None
    email: Optional[str] = None
    taxCountry: str
    income: Optional[int] = None
    cachedAt: Optional[str] = None


@lru_cache(maxsize=1)
def get_service() -> KycAggregationService:
    """Return the process-wide aggregation service (one volatile tier per process)."""

    return build_aggregation_service()


@router.get(
    "/kyc-data/{identifier}",
    summary="Fetch the aggregated KYC profile for a customer",
    response_model=AggregatedKycData,
)
def get_aggregated_kyc_data(identifier: str, service: KycAggregationService = Depends(get_service)):
    if not identifier.strip():
        raise ValueError("identifier cannot be empty")
    LOGGER.info("Processing request for KYC data with identifier=%s", identifier)
    record = service.get_aggregated_data(identifier)
    return record.to_dict()
