from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from farmeely.db.session import async_session
from farmeely.models import Otp, ResetOtp, User, UserTemp, Wallet

from conftest import PASSWORD

SIGNUP = {
    "surname": "Bello",
    "othernames": "Tunde",
    "email": "Tunde@Example.com",
    "password": "Str0ng!Pass",
    "phoneNumber": "+2348098765432",
    "location": "Ibadan",
    "address": "4 Ring Road",
}


async def _otp_for(email):
    async with async_session() as session:
        res = await session.execute(select(Otp).where(Otp.email == email))
        return res.scalar_one()


async def test_signup_verify_login_profile(client, sent_emails):
    resp = await client.post("/users/signup", json=SIGNUP)
    assert resp.status_code == 200
    assert sent_emails[-1]["to"] == "tunde@example.com"
    assert sent_emails[-1]["template"] == "otp.txt"
    otp = sent_emails[-1]["context"]["otp"]
    assert len(otp) == 6

    resp = await client.post(f"/users/verify-email/tunde@example.com/{otp}")
    assert resp.status_code == 200
    tokens = resp.json()["data"]
    assert tokens["token_type"] == "bearer"

    async with async_session() as session:
        user = (await session.execute(select(User).where(User.email == "tunde@example.com"))).scalar_one()
        assert user.is_email_verified
        wallet = (await session.execute(select(Wallet).where(Wallet.user_id == user.user_id))).scalar_one()
        assert wallet.balance == 0
        assert (await session.execute(select(UserTemp))).scalars().first() is None

    resp = await client.post("/users/login", json={"email": "TUNDE@example.com", "password": "Str0ng!Pass"})
    assert resp.status_code == 200
    access = resp.json()["data"]["access_token"]

    resp = await client.get("/users/profile", headers={"Authorization": f"Bearer {access}"})
    profile = resp.json()["data"]
    assert profile["email"] == "tunde@example.com"
    assert profile["role"] == "user"
    assert "hashed_password" not in profile


async def test_signup_rejects_existing_email(client, make_user):
    await make_user(email="taken@example.com")
    resp = await client.post("/users/signup", json={**SIGNUP, "email": "taken@example.com"})
    assert resp.status_code == 400
    assert resp.json() == {"status": "error", "message": "Email already exist"}


async def test_signup_validation_message(client):
    resp = await client.post("/users/signup", json={**SIGNUP, "password": "weakpass"})
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("Password must contain")


async def test_verify_email_wrong_otp(client, sent_emails):
    await client.post("/users/signup", json=SIGNUP)
    wrong = "000000" if sent_emails[-1]["context"]["otp"] != "000000" else "111111"
    resp = await client.post(f"/users/verify-email/tunde@example.com/{wrong}")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or Expired otp"


async def test_resend_otp_only_after_expiry(client, sent_emails):
    await client.post("/users/signup", json=SIGNUP)
    resp = await client.post("/users/resend-otp/tunde@example.com")
    assert resp.status_code == 400

    async with async_session() as session:
        await session.execute(
            update(Otp).where(Otp.email == "tunde@example.com").values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await session.commit()

    resp = await client.post("/users/resend-otp/tunde@example.com")
    assert resp.status_code == 200
    record = await _otp_for("tunde@example.com")
    assert sent_emails[-1]["context"]["otp"] == record.otp


async def test_resend_otp_unknown_email(client):
    resp = await client.post("/users/resend-otp/nobody@example.com")
    assert resp.status_code == 400


async def test_login_wrong_password_then_rate_limited(client, make_user):
    await make_user(email="ada@example.com")
    for _ in range(5):
        resp = await client.post("/users/login", json={"email": "ada@example.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password"
    resp = await client.post("/users/login", json={"email": "ada@example.com", "password": PASSWORD})
    assert resp.status_code == 429


async def test_login_deactivated_account(client, make_user):
    await make_user(email="off@example.com", is_active=False)
    resp = await client.post("/users/login", json={"email": "off@example.com", "password": PASSWORD})
    assert resp.status_code == 403


async def test_refresh_rotates_and_logout_revokes(client, make_user):
    await make_user(email="ada@example.com")
    login = await client.post("/users/login", json={"email": "ada@example.com", "password": PASSWORD})
    refresh = login.json()["data"]["refresh_token"]

    resp = await client.post("/users/refresh-token", json={"refreshToken": refresh})
    assert resp.status_code == 200
    rotated = resp.json()["data"]["refresh_token"]
    assert rotated != refresh

    # the old token is gone after rotation
    resp = await client.post("/users/refresh-token", json={"refreshToken": refresh})
    assert resp.status_code == 401

    resp = await client.post("/users/logout", json={"refreshToken": rotated})
    assert resp.status_code == 204
    resp = await client.post("/users/refresh-token", json={"refreshToken": rotated})
    assert resp.status_code == 401


async def test_forgot_and_reset_password(client, make_user, sent_emails):
    await make_user(email="ada@example.com")
    resp = await client.post("/users/forgot-password/ada@example.com")
    assert resp.status_code == 200
    assert resp.json()["expiresAt"]
    otp = sent_emails[-1]["context"]["otp"]

    resp = await client.post(
        "/users/complete", json={"email": "ada@example.com", "otp": otp, "newPassword": "N3w!Password"}
    )
    assert resp.status_code == 200

    resp = await client.post("/users/login", json={"email": "ada@example.com", "password": "N3w!Password"})
    assert resp.status_code == 200
    async with async_session() as session:
        assert (await session.execute(select(ResetOtp))).scalars().first() is None


async def test_forgot_password_unknown_user(client):
    resp = await client.post("/users/forgot-password/ghost@example.com")
    assert resp.status_code == 404


async def test_reset_password_bad_otp_format(client, make_user):
    await make_user(email="ada@example.com")
    resp = await client.post(
        "/users/complete", json={"email": "ada@example.com", "otp": "12ab56", "newPassword": "N3w!Password"}
    )
    assert resp.status_code == 400


async def test_update_profile(client, make_user):
    user, headers = await make_user()
    resp = await client.patch("/users/profile", json={"location": "Abuja", "phoneNumber": "+2347000000000"}, headers=headers)
    assert resp.status_code == 200
    async with async_session() as session:
        fresh = (await session.execute(select(User).where(User.user_id == user.user_id))).scalar_one()
    assert fresh.location == "Abuja"
    assert fresh.phone_number == "+2347000000000"
    assert fresh.surname == "Okafor"


async def test_update_profile_rejects_unknown_fields(client, make_user):
    _, headers = await make_user()
    resp = await client.patch("/users/profile", json={"role": "admin"}, headers=headers)
    assert resp.status_code == 400
