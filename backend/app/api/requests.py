import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.dependencies.services import (
    get_deletion_service,
    get_notification_service,
    get_rate_limiter,
)
from app.exceptions import (
    DuplicateActiveRequestError,
    MailDeliveryError,
    StorageError,
    ValidationError,
)
from app.limiter import limiter
from app.schemas.request import DeletionRequestCreate, SubmissionResponse
from app.services.deletion_request_service import ConfirmStatus, DeletionRequestService
from app.services.notification_service import NotificationService
from app.services.rate_limiter import RateLimiter
from app.utils.email_templates import EmailTemplates

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_SUBMIT_ERROR = "Failed to process your request. Please try again later."


def error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def error_page(status_code: int, title: str, message: str, description: str) -> HTMLResponse:
    return HTMLResponse(
        EmailTemplates.render_error_page(title, message, description), status_code=status_code
    )


async def read_submission(request: Request) -> DeletionRequestCreate:
    """Accept both the JSON body sent by the form script and a plain form post"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
    else:
        payload = dict(await request.form())

    if not isinstance(payload, dict):
        payload = {}
    return DeletionRequestCreate.model_validate(payload)


@router.get("/request-deletion", response_class=HTMLResponse)
def deletion_form():
    """Account deletion request form"""
    return HTMLResponse(EmailTemplates.render_request_form())


@router.post("/request-deletion", response_model=SubmissionResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def submit_deletion_request(
    request: Request,
    service: DeletionRequestService = Depends(get_deletion_service),
    notifier: NotificationService = Depends(get_notification_service),
    submission_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Create a deletion request and email the confirmation link"""
    submission = await read_submission(request)

    if submission.email:
        limit = await run_in_threadpool(submission_limiter.check_limit, subject=submission.email)
        if not limit.allowed:
            return error_response(
                429,
                "Too many deletion requests for this address. Please try again later.",
                headers=limit.headers,
            )

    try:
        token = await run_in_threadpool(
            service.submit_request, submission.email, submission.reason, submission.feedback
        )
    except (ValidationError, DuplicateActiveRequestError) as e:
        return error_response(400, str(e))
    except StorageError:
        logger.exception("Error processing deletion request")
        return error_response(500, GENERIC_SUBMIT_ERROR)

    logger.info(f"Deletion request created for {submission.email} (token: {token[:8]}...)")

    confirmation_link = f"{settings.public_base_url}/confirm/{token}"
    try:
        await run_in_threadpool(
            notifier.send_confirmation_email, submission.email, confirmation_link
        )
    except MailDeliveryError:
        logger.exception(f"Failed to send confirmation email to {submission.email}")
        # Without the email the request can never be confirmed; free the address for a retry
        try:
            await run_in_threadpool(service.delete_request, token)
        except StorageError:
            logger.exception(f"Failed to remove unsent request {token[:8]}...")
        return error_response(500, GENERIC_SUBMIT_ERROR)

    return SubmissionResponse(
        success=True, message="Confirmation email sent. Please check your inbox."
    )


@router.get("/confirm/{token}", response_class=HTMLResponse)
def confirm_deletion_request(
    token: str,
    service: DeletionRequestService = Depends(get_deletion_service),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Confirm a deletion request from the emailed link and notify support"""
    try:
        result = service.confirm_token(token)
    except StorageError:
        logger.exception("Error confirming deletion request")
        return error_page(
            500,
            "Something Went Wrong",
            "We encountered an error processing your request.",
            "Please try again later or contact support.",
        )

    if result.status == ConfirmStatus.NOT_FOUND:
        return error_page(
            404,
            "Invalid or Expired Link",
            "This confirmation link is invalid or has already been used.",
            "If you need to delete your account, please submit a new request.",
        )

    if result.status == ConfirmStatus.EXPIRED:
        logger.info(f"Expired token used: {token[:8]}...")
        return error_page(
            410,
            "Link Expired",
            "This confirmation link has expired.",
            "Please submit a new deletion request.",
        )

    if result.status == ConfirmStatus.ALREADY_CONFIRMED:
        return HTMLResponse(EmailTemplates.render_already_used_page(), status_code=410)

    logger.info(f"Deletion confirmed for {result.request.email}")

    try:
        notifier.send_support_notice(result.request)
    except MailDeliveryError:
        logger.exception(f"Failed to notify support for request {token[:8]}...")
        return error_page(
            500,
            "Something Went Wrong",
            "We encountered an error processing your request.",
            "Please try again later or contact support.",
        )

    return HTMLResponse(EmailTemplates.render_confirmed_page())
