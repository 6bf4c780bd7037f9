"""Signed bearer headers for API tests."""
from coop_billing.auth.jwt import jwt_auth


def auth_headers(uid: str = "admin-uid", name: str = "Amina Wanjiru") -> dict[str, str]:
    """Bearer header for a signed access token."""
    token = jwt_auth.create_access_token(uid=uid, name=name)
    return {"Authorization": f"Bearer {token}"}
