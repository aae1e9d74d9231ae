"""The single place where core exceptions become ``ResultV1`` envelopes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from packages.shared.schemas.result_v1 import ErrorTypeV1, ResultV1
from pydantic import BaseModel
from services.storefront.app.errors import InfrastructureError, StorefrontError
from services.storefront.app.services.catalog_base import CatalogLookupError
from services.storefront.app.utils.logging import add_context, clear_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)


def failure(error: StorefrontError) -> ResultV1:
    return ResultV1.fail(error.message, error.error_type, error.details)


def run_operation(db: Session, operation: str, fn: Callable[[], BaseModel], **context: Any) -> ResultV1:
    """Run ``fn`` and wrap its outcome. Nothing raised by the core escapes."""

    add_context(operation=operation, **context)
    try:
        data = fn()
    except StorefrontError as e:
        db.rollback()
        if e.retryable:
            logger.warning("Operation failed", error_type=e.error_type.value, error=e.message)
        else:
            logger.info("Operation rejected", error_type=e.error_type.value, error=e.message)
        return failure(e)
    except CatalogLookupError as e:
        db.rollback()
        logger.warning("Catalog lookup failed", lookup=e.operation, cause=e.cause)
        return failure(InfrastructureError("catalog_unavailable", operation, cause=e.cause))
    except SQLAlchemyError as e:
        db.rollback()
        error = InfrastructureError.from_db_error(e, operation)
        logger.warning("Storage failure", category=error.category, cause=type(e).__name__)
        return failure(error)
    except Exception:
        db.rollback()
        logger.exception("Unexpected error")
        return ResultV1.fail(
            "An unexpected error occurred. Please try again.",
            ErrorTypeV1.INTERNAL_ERROR,
            {"operation": operation},
        )
    finally:
        clear_context()

    return ResultV1.ok(data.model_dump(mode="json"))
