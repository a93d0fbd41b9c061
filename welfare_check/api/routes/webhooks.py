"""
Webhook routes for Retell call lifecycle events
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from welfare_check.api.middleware.webhook_security import validate_retell_webhook
from welfare_check.core.logging import get_logger
from welfare_check.services.reconciler import CallReconciler, ReconcileAction

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_reconciler(request: Request) -> CallReconciler:
    """Reconciler built at startup and held on the application state"""
    return request.app.state.reconciler


@router.post("/retell", dependencies=[Depends(validate_retell_webhook)])
async def handle_retell_webhook(
    request: Request,
    reconciler: CallReconciler = Depends(get_reconciler)
):
    """
    Handle call lifecycle events from Retell

    Returns 204 once the event is reconciled (including no-op updates),
    200 for event types that are acknowledged but not acted on, and the
    error's status code with a JSON body otherwise.
    """
    body = await request.body()
    result = await reconciler.process(body)

    if result.error:
        return JSONResponse(status_code=result.status_code, content=result.error)

    if result.action == ReconcileAction.IGNORED:
        return JSONResponse(
            status_code=200,
            content={"status": "ignored", "event": result.event_type}
        )

    return Response(status_code=204)
