import logging

from fastapi import APIRouter, Depends, Header
from ..schemas import AdviceRequest, AdviceResponse, ErrorResponse
from ..services.advice_service import Credentials, PriceAdviceService
from ..core.config import settings
from ..core.errors import AdvisorError
from ..core.security import client_openai_key, require_api_key, rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()

_service: PriceAdviceService | None = None

def service_dep() -> PriceAdviceService:
    # Built once: only immutable config and stateless clients inside.
    global _service
    if _service is None:
        _service = PriceAdviceService()
    return _service

_ERRORS = {
    code: {"model": ErrorResponse} for code in (400, 422, 429, 500, 502, 503)
}

@router.post("/price-advice", response_model=AdviceResponse, responses=_ERRORS)
async def post_price_advice(
    body: AdviceRequest,
    x_plan: str | None = Header(default=None, alias="x-plan"),
    openai_key: str | None = Depends(client_openai_key),
    _auth = Depends(require_api_key),     # API key guard
    _lim  = Depends(rate_limit),          # Rate limiting
    svc: PriceAdviceService = Depends(service_dep),
):
    credentials = Credentials(openai_api_key=openai_key, search_api_key=settings.TAVILY_API_KEY)
    try:
        return await svc.produce_advice(body.input, x_plan or "free", credentials)
    except AdvisorError:
        raise
    except Exception as exc:
        logger.exception("price advice failed")
        raise AdvisorError(str(exc) or exc.__class__.__name__) from exc
