"""In-app notifications for contributors."""

from __future__ import annotations

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from questgate.extensions import db
from questgate.models import Notification


def notify(user_id: str, title: str, message: str, type: str, link: str | None = None) -> Notification | None:
    """Queue a notification for a user; failures are logged, not raised."""
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        link=link,
        read=False,
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to notify user {user_id}: {e}")
        return None
    return notification


def list_for_user(user_id: str, unread_only: bool = False) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc())
    return list(db.session.execute(stmt).scalars().all())


def serialize_notification(notification: Notification) -> dict:
    return {
        'id': notification.id,
        'title': notification.title,
        'message': notification.message,
        'type': notification.type,
        'link': notification.link,
        'read': notification.read,
        'created_at': notification.created_at.isoformat() if notification.created_at else None,
    }


__all__ = ["notify", "list_for_user", "serialize_notification"]
