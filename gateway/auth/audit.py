from dataclasses import dataclass

from sqlalchemy.orm import Session

from gateway.models.login_log import LoginLog


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str = "unknown"
    user_agent: str = "unknown"


def record_login(
    db: Session,
    *,
    client: ClientInfo,
    success: bool,
    user_id: str | None = None,
    email: str | None = None,
    event: str = "login",
    reason: str | None = None,
) -> LoginLog:
    entry = LoginLog(
        user_id=user_id,
        email=email,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
        success=success,
        event=event,
        reason=reason,
    )
    db.add(entry)
    db.commit()
    return entry
