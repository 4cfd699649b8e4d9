"""Append-only audit trail for survey draft mutations."""

import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from parish_census.db.enums import SurveyAuditAction
from parish_census.db.models import SurveyAuditLog

logger = logging.getLogger(__name__)


def log_draft_change(
    db: Session,
    draft_id: uuid.UUID,
    user_id: uuid.UUID | None,
    action: SurveyAuditAction,
    stage_number: int | None = None,
    old_data: dict[str, Any] | None = None,
    new_data: dict[str, Any] | None = None,
) -> None:
    """
    Record a draft mutation in the caller's transaction.

    Written in a savepoint: an audit failure is logged and never breaks the
    mutation being audited. The caller commits.
    """
    try:
        with db.begin_nested():
            db.add(
                SurveyAuditLog(
                    draft_id=draft_id,
                    user_id=user_id,
                    action=action.value,
                    stage_number=stage_number,
                    old_data=old_data,
                    new_data=new_data,
                )
            )
            db.flush()
    except SQLAlchemyError as exc:
        logger.warning(
            "Survey audit entry dropped draft_id=%s action=%s: %s", draft_id, action.value, exc
        )
