from fastapi import APIRouter, Depends, Request, status

from app.api.dependencies import get_use_cases
from app.infrastructure.db.retry import retry_on_deadlock

router = APIRouter()


@router.post("/webhooks/stripe", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    use_cases=Depends(get_use_cases),
) -> dict:
    """
    Processor event ingestion.

    Always acknowledges duplicates and ignored types with 200 so the
    processor stops redelivering them; a bad signature is a 400.
    """
    raw_body = await request.body()
    signature = request.headers.get("Stripe-Signature")

    async def handle():
        return await use_cases["handle_webhook"].execute(raw_body=raw_body, signature=signature)

    result = await retry_on_deadlock(handle, max_attempts=3, base_delay=0.1)
    return result.to_response()
