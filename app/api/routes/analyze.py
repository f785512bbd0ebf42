"""
Analysis route: admission control, input validation, then the vision model.
"""
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import AdmissionSettings, get_settings
from app.db.session import get_db
from app.schemas.admission import (
    AnalysisErrorResponse,
    FreeScanUsedResponse,
    RateLimitedResponse,
    UsageLimitResponse,
    VerificationUnavailableResponse,
    drop_none,
)
from app.services.admission import AdmissionController, AdmissionDecision, DenyReason
from app.services.analysis_engine import AnalysisError, VideoAnalyzer, get_video_analyzer
from app.services.video_frames import (
    ALLOWED_VIDEO_TYPES,
    VideoInputError,
    VideoTooLargeError,
    download_video,
)
from app.tasks.cleanup import maybe_schedule_cleanup
from app.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter()

_CHUNK_SIZE = 1024 * 1024


def _denial_response(decision: AdmissionDecision) -> JSONResponse:
    if decision.reason in (DenyReason.RATE_LIMIT_UNAVAILABLE, DenyReason.QUOTA_UNAVAILABLE):
        body = VerificationUnavailableResponse(reason=decision.reason.value, message=decision.message)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body.model_dump())

    if decision.reason == DenyReason.FREE_SCAN_USED:
        body = FreeScanUsedResponse(message=decision.message)
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=body.model_dump())

    if decision.reason == DenyReason.RATE_LIMITED:
        body = RateLimitedResponse(
            message=decision.message,
            remaining=decision.remaining or 0,
            resetTime=decision.reset_time.isoformat() + "Z" if decision.reset_time else None,
            retryAfter=decision.retry_after,
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body.model_dump(),
            headers={"Retry-After": str(decision.retry_after)},
        )

    body = UsageLimitResponse(
        quotaReason=decision.quota_reason,
        message=decision.message,
        usage=decision.usage or 0,
        limit=decision.limit or 0,
        plan=decision.plan or "free",
    )
    return JSONResponse(status_code=status.HTTP_402_PAYMENT_REQUIRED, content=body.model_dump())


def _error(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=drop_none({"error": error, "message": message}))


def _save_upload(upload: UploadFile, dest_path: str, max_bytes: int) -> int:
    written = 0
    with open(dest_path, "wb") as out:
        while True:
            chunk = upload.file.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise VideoTooLargeError(
                    f"Maximum file size is {max_bytes // (1024 * 1024)}MB"
                )
            out.write(chunk)
    return written


@router.post("/analyze")
def analyze_video(
    request: Request,
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    videoUrl: Optional[str] = Form(None),
    userId: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    settings: AdmissionSettings = Depends(get_settings),
    analyzer: VideoAnalyzer = Depends(get_video_analyzer),
):
    """
    Analyze gameplay video for cheating indicators.
    Accepts a multipart `file` upload or a direct `videoUrl`; `userId` is optional.
    """
    ip = get_client_ip(request, settings.trusted_ip_header)
    user_id = (userId or "").strip() or None
    video_url = (videoUrl or "").strip() or None
    has_file = file is not None and bool(file.filename)
    video_type = "url" if video_url and not has_file else "upload"
    logger.info("[REQUEST] IP: %s, User: %s, Input: %s", ip, user_id, video_type)

    controller = AdmissionController(db, settings)
    decision = controller.admit(
        ip,
        user_id=user_id,
        user_agent=request.headers.get("user-agent"),
        video_type=video_type,
    )
    if not decision.allowed:
        return _denial_response(decision)

    if not has_file and not video_url:
        controller.record_blocked(decision, "No input")
        return _error(status.HTTP_400_BAD_REQUEST, "No video file or video URL provided")

    work_dir = tempfile.mkdtemp(prefix="aimalyze-")
    try:
        video_path = os.path.join(work_dir, "input.mp4")
        if has_file:
            content_type = (file.content_type or "").strip().lower()
            if content_type not in ALLOWED_VIDEO_TYPES:
                controller.record_blocked(decision, "Invalid file type")
                return _error(status.HTTP_400_BAD_REQUEST, "Invalid file type", "Allowed: mp4, mov, webm")
            video_name = Path(file.filename).name
            try:
                _save_upload(file, video_path, settings.max_upload_bytes)
            except VideoTooLargeError as e:
                controller.record_blocked(decision, "File too large")
                return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "File too large", str(e))
        else:
            video_name = video_url
            try:
                download_video(video_url, video_path, settings.max_upload_bytes)
            except VideoTooLargeError as e:
                controller.record_blocked(decision, "File too large")
                return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "File too large", str(e))
            except VideoInputError as e:
                controller.record_blocked(decision, "Invalid video URL")
                return _error(status.HTTP_400_BAD_REQUEST, "Invalid video URL", str(e))

        try:
            result = analyzer.analyze_video(video_path)
        except (AnalysisError, VideoInputError) as e:
            logger.error("[ERROR] Analysis failed for IP %s: %s", ip, e)
            controller.record_failure(decision, type(e).__name__)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=AnalysisErrorResponse(details=str(e)).model_dump(),
            )
        except Exception as e:
            logger.exception("[ERROR] Unexpected analysis failure for IP %s", ip)
            controller.record_failure(decision, "Unexpected error")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=AnalysisErrorResponse(details=str(e)).model_dump(),
            )
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)

    logger.info(
        "[SUCCESS] Analysis complete for IP %s. Verdict: %s, Confidence: %s",
        ip, result.verdict, result.confidence
    )
    controller.record_success(decision, result, video_name=video_name)
    maybe_schedule_cleanup(
        background_tasks,
        settings.log_cleanup_probability,
        settings.request_log_retention_days,
    )

    return {
        **result.raw,
        "verdict": result.verdict,
        "confidence": result.confidence,
        "reasoning": result.reasoning,
        "remaining": decision.remaining,
    }
