"""
Smart Farming - Session tokens.
A signed JWT carries the session's subscription plan; changing plan means issuing a new token.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from farm_config import config
from plans import SubscriptionContext, parse_plan


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.auth.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.auth.secret_key, algorithm=config.auth.algorithm)


def verify_token(token: str) -> Optional[dict]:
    """Verify JWT and return payload or None."""
    try:
        payload = jwt.decode(token, config.auth.secret_key, algorithms=[config.auth.algorithm])
        return payload
    except JWTError:
        return None


def issue_session_token(context: SubscriptionContext) -> str:
    """Token for a subscription context; a new session id is minted when the context has none."""
    session_id = context.session_id or uuid.uuid4().hex
    return create_access_token(data={"sub": session_id, "plan": context.plan.value})


def read_session(token: str) -> Optional[SubscriptionContext]:
    """Subscription context from a token, None if the token is invalid, expired or names no known plan."""
    payload = verify_token(token)
    if payload is None:
        return None
    plan = parse_plan(payload.get("plan"))
    if plan is None:
        return None
    return SubscriptionContext(plan=plan, session_id=payload.get("sub"))
