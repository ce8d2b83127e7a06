"""Citation validation endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from verisource.api.deps import get_citation_validator
from verisource.api.v1.schemas import CitationValidationRequest
from verisource.models.citation import CitationValidationResult
from verisource.utils.citation_validator import CitationValidator

router = APIRouter(prefix="/v1/citations", tags=["citations"])


@router.post("/validate", response_model=CitationValidationResult)
async def validate_citations(
    request: CitationValidationRequest,
    validator: CitationValidator = Depends(get_citation_validator),
) -> CitationValidationResult:
    """Check an answer's inline citations against the sources it was given.

    Policy failures are reported in ``issues`` with ``is_valid=false``;
    they are not HTTP errors.
    """
    return validator.validate(request.text, request.sources, min_citations=request.min_citations)
