import logging
from decimal import Decimal
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from farmeely.auth.deps import get_current_user
from farmeely.config import settings
from farmeely.db.session import get_session
from farmeely.models.models import Group, GroupMember, Livestock, PendingPayment, Transaction, User
from farmeely.schemas.group import CompleteCreateGroupRequest, CreateGroupRequest, JoinGroupRequest
from farmeely.services.payment_gateway import (
    PaystackClient,
    PaystackError,
    claim_reference,
    get_gateway,
    release_reference,
)
from farmeely.services.wallet import WalletError, credit_wallet, debit_wallet, find_successful_transaction, paid_by
from farmeely.validation import create_group_validation, join_group_validation, validate_body

logger = logging.getLogger(__name__)

router = APIRouter(tags=["groups"])


class GroupPaymentError(Exception):
    pass


def progress(g: Group) -> float:
    return (g.slot_taken / g.total_slot) * 100 if g.total_slot else 0


def livestock_brief(l: Livestock) -> dict:
    if l is None:
        return None
    return {
        "livestock_id": l.livestock_id,
        "name": l.name,
        "price": float(l.price),
        "minimum_amount": float(l.minimum_amount),
        "imageUrl": l.image_url,
    }


def user_brief(u: User) -> dict:
    return {"user_id": u.user_id, "surname": u.surname, "othernames": u.othernames, "email": u.email}


def group_out(g: Group, with_livestock: bool = True) -> dict:
    out = {
        "group_id": g.group_id,
        "groupName": g.group_name,
        "description": g.description,
        "livestock_id": g.livestock_id,
        "created_by": g.created_by,
        "totalSlot": g.total_slot,
        "slotTaken": g.slot_taken,
        "slotPrice": g.slot_price,
        "totalSlotLeft": g.total_slot_left,
        "totalSlotPriceLeft": float(g.total_slot_price_left),
        "finalSlotPriceTaken": float(g.final_slot_price_taken),
        "paymentMethod": g.payment_method,
        "status": g.status,
        "created_at": g.created_at,
        "progress": progress(g),
    }
    if with_livestock:
        out["livestock"] = livestock_brief(g.livestock)
    return out


async def settle_external_payment(
    db: AsyncSession,
    gateway: PaystackClient,
    user: User,
    reference: str,
    expected: Decimal,
    description: str,
    group_id: str,
):
    """Verify a card/bank payment for a group and record it as a debit."""
    if await find_successful_transaction(db, reference):
        raise GroupPaymentError("Payment reference already used.")
    verified = await gateway.verify_or_raise(reference)
    if not paid_by(verified, user):
        logger.warning("User %s tried to settle group payment %s paid by someone else", user.user_id, reference)
        raise GroupPaymentError("Payment reference does not belong to this user.")
    if verified["amount"] != expected:
        logger.warning("Amount mismatch for %s: paid %s, expected %s", reference, verified["amount"], expected)
        raise GroupPaymentError("Payment amount mismatch.")
    db.add(
        Transaction(
            transaction_id=str(uuid4()),
            user_id=user.user_id,
            email=user.email,
            amount=expected,
            transaction_type="debit",
            payment_means="others",
            status="success",
            payment_reference=reference,
            description=description,
            group_id=group_id,
        )
    )


@router.get("/active")
async def active_groups(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(
        sa_select(Group)
        .where(Group.status == "active")
        .options(selectinload(Group.livestock))
        .order_by(Group.created_at.desc())
    )
    return {
        "status": "success",
        "message": "Active groups retrieved successfully",
        "data": [group_out(g) for g in res.scalars().all()],
    }


@router.get("/my-groups")
async def my_groups(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(
        sa_select(GroupMember)
        .where(GroupMember.user_id == current_user.user_id)
        .options(selectinload(GroupMember.group).selectinload(Group.livestock))
        .order_by(GroupMember.joined_at.desc())
    )
    data = [
        {
            "group_id": m.group_id,
            "slots": m.slots,
            "status": m.status,
            "payment_reference": m.payment_reference,
            "joined_at": m.joined_at,
            "group": group_out(m.group),
        }
        for m in res.scalars().all()
        if m.group is not None
    ]
    return {"status": "success", "message": "User groups retrieved successfully", "data": data}


@router.get("/my-created")
async def my_created_groups(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(
        sa_select(Group)
        .where(Group.created_by == current_user.user_id)
        .options(selectinload(Group.livestock))
        .order_by(Group.created_at.desc())
    )
    return {
        "status": "success",
        "message": "Created groups retrieved successfully",
        "data": [group_out(g) for g in res.scalars().all()],
    }


@router.get("/my-joined")
async def my_joined_groups(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    """Active groups the user joined but did not create."""
    res = await db.execute(
        sa_select(GroupMember, Group)
        .join(Group, Group.group_id == GroupMember.group_id)
        .where(
            GroupMember.user_id == current_user.user_id,
            Group.created_by != current_user.user_id,
            Group.status == "active",
        )
        .options(selectinload(Group.livestock))
    )
    data = []
    for member, group in res.all():
        out = group_out(group)
        out["userSlots"] = member.slots
        out["joinedAt"] = member.joined_at
        data.append(out)
    return {"status": "success", "message": "Joined groups retrieved successfully", "data": data}


@router.post("/create/start")
async def start_create_group(
    payload: CreateGroupRequest = Depends(validate_body(create_group_validation)),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    res = await db.execute(sa_select(Livestock).where(Livestock.livestock_id == payload.livestock_id))
    if res.scalars().first() is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Livestock not found")
    if payload.slot_taken > payload.total_slot:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid number of initial slots for creator")

    group = Group(
        group_id=str(uuid4()),
        livestock_id=payload.livestock_id,
        created_by=current_user.user_id,
        group_name=payload.group_name,
        description=payload.description,
        total_slot=payload.total_slot,
        slot_taken=payload.slot_taken,
        slot_price=payload.slot_price,
        total_slot_left=payload.total_slot - payload.slot_taken,
        total_slot_price_left=Decimal(payload.total_slot * payload.slot_price),
        final_slot_price_taken=Decimal(payload.slot_price * payload.slot_taken),
        payment_method="wallet",
        status="pending",
    )
    db.add(group)
    await db.commit()
    return {
        "status": "success",
        "message": "Group draft created successfully. Proceed to finalize payment.",
        "data": {"group_id": group.group_id},
    }


@router.post("/create/complete")
async def complete_create_group(
    req: CompleteCreateGroupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    res = await db.execute(
        sa_select(Group).where(Group.group_id == req.group_id, Group.created_by == current_user.user_id)
    )
    group = res.scalars().first()
    if group is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group not found or you are not the creator.")
    if group.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group is already active or completed.")

    amount = Decimal(group.slot_price * group.slot_taken)
    description = f'Initial contribution for group "{group.group_name}"'

    if req.payment_method == "others" and not req.payment_reference:
        try:
            data = await gateway.initialize_or_raise(
                current_user.email,
                amount,
                callback_url=(
                    f"{settings.FRONTEND_BASE_URL}/dashboard/groups/create/complete"
                    f"?group_id={group.group_id}&payment_method=others"
                ),
                metadata={"user_id": current_user.user_id, "action": "CREATE_GROUP", "group_id": group.group_id},
            )
        except PaystackError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        db.add(
            PendingPayment(
                user_id=current_user.user_id,
                email=current_user.email,
                payment_reference=data["reference"],
                action_type="CREATE_GROUP",
                meta={"groupId": group.group_id, "slots": group.slot_taken, "amount": str(amount), "groupName": group.group_name},
            )
        )
        await db.commit()
        return {
            "status": "success",
            "message": "Redirecting to payment gateway.",
            "data": {"paymentLink": data["authorization_url"], "paymentReference": data["reference"]},
        }

    reference = req.payment_reference
    claimed = False
    try:
        if req.payment_method == "wallet":
            reference = await debit_wallet(
                db,
                current_user,
                amount,
                description,
                reference=f"wallet_create_{group.group_id}_{uuid4()}",
                group_id=group.group_id,
                purpose="create_group",
            )
        else:
            if not await claim_reference(reference):
                raise GroupPaymentError("Payment for this reference is already being processed.")
            claimed = True
            await settle_external_payment(db, gateway, current_user, reference, amount, description + " via Card/Bank Transfer", group.group_id)
            await db.execute(
                sa_delete(PendingPayment).where(
                    PendingPayment.payment_reference == reference, PendingPayment.action_type == "CREATE_GROUP"
                )
            )

        group.total_slot_left = group.total_slot - group.slot_taken
        group.final_slot_price_taken = amount
        group.total_slot_price_left = Decimal(group.total_slot * group.slot_price) - amount
        group.payment_reference = reference
        group.payment_method = req.payment_method
        group.status = "completed" if group.total_slot_left == 0 else "active"
        db.add(
            GroupMember(
                group_id=group.group_id,
                user_id=current_user.user_id,
                slots=group.slot_taken,
                status="approved",
                payment_reference=reference,
            )
        )
        await db.commit()
    except (WalletError, PaystackError, GroupPaymentError) as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment reference already used.")
    finally:
        if claimed:
            await release_reference(reference)

    logger.info("Group %s activated by %s via %s", group.group_id, current_user.user_id, req.payment_method)
    return {
        "status": "success",
        "message": "Group activated and funded successfully!",
        "data": {"group_id": group.group_id},
    }


@router.post("/{group_id}/join/start")
async def start_join_group(
    group_id: str,
    payload: JoinGroupRequest = Depends(validate_body(join_group_validation)),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    res = await db.execute(sa_select(Group).where(Group.group_id == group_id, Group.status == "active"))
    group = res.scalars().first()
    if group is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group not found or not active.")
    res = await db.execute(
        sa_select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == current_user.user_id)
    )
    if res.scalars().first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have already joined this group.")
    if payload.slots > group.total_slot_left:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Requested slots ({payload.slots}) exceed available slots ({group.total_slot_left}).",
        )

    amount = Decimal(group.slot_price * payload.slots)
    payment_link = None
    if payload.payment_method == "wallet":
        reference = f"pending_wallet_join_{group_id}_{uuid4()}"
    else:
        try:
            data = await gateway.initialize_or_raise(
                current_user.email,
                amount,
                callback_url=(
                    f"{settings.FRONTEND_BASE_URL}/dashboard/groups/join/complete"
                    f"?group_id={group_id}&payment_method=others"
                ),
                metadata={"user_id": current_user.user_id, "action": "JOIN_GROUP", "group_id": group_id},
            )
        except PaystackError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        payment_link = data["authorization_url"]
        reference = data["reference"]

    db.add(
        PendingPayment(
            user_id=current_user.user_id,
            email=current_user.email,
            payment_reference=reference,
            action_type="JOIN_GROUP",
            meta={
                "groupId": group_id,
                "slots": payload.slots,
                "slotPrice": group.slot_price,
                "groupName": group.group_name,
                "amount": str(amount),
                "paymentMethod": payload.payment_method,
            },
        )
    )
    await db.commit()
    return {
        "status": "success",
        "message": "Join request initiated",
        "data": {"paymentMethod": payload.payment_method, "paymentLink": payment_link, "paymentReference": reference},
    }


@router.post("/join/complete/{payment_reference}")
async def complete_join_group(
    payment_reference: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: PaystackClient = Depends(get_gateway),
):
    if not await claim_reference(payment_reference):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Join request is already being processed.")
    try:
        res = await db.execute(
            sa_select(PendingPayment).where(
                PendingPayment.user_id == current_user.user_id,
                PendingPayment.payment_reference == payment_reference,
                PendingPayment.action_type == "JOIN_GROUP",
                PendingPayment.status == "pending",
            )
        )
        pending = res.scalars().first()
        if pending is None:
            raise GroupPaymentError("No pending join request found for this reference.")
        meta = pending.meta or {}
        group_id = meta["groupId"]
        slots = int(meta["slots"])
        amount = Decimal(int(meta["slotPrice"]) * slots)
        description = f'Joining group "{meta.get("groupName")}"'

        # take the slots first so concurrent joins cannot oversell
        taken = await db.execute(
            sa_update(Group)
            .where(Group.group_id == group_id, Group.status == "active", Group.total_slot_left >= slots)
            .values(
                slot_taken=Group.slot_taken + slots,
                total_slot_left=Group.total_slot_left - slots,
                final_slot_price_taken=Group.final_slot_price_taken + amount,
                total_slot_price_left=Group.total_slot_price_left - amount,
            )
        )
        if taken.rowcount == 0:
            raise GroupPaymentError("Group is no longer active or has too few slots left.")

        if meta.get("paymentMethod") == "wallet":
            await debit_wallet(db, current_user, amount, description, group_id=group_id, purpose="join_group")
        else:
            await settle_external_payment(db, gateway, current_user, payment_reference, amount, description + " via Card/Bank Transfer", group_id)

        await db.execute(
            sa_update(Group)
            .where(Group.group_id == group_id, Group.total_slot_left == 0)
            .values(status="completed")
        )
        db.add(
            GroupMember(
                group_id=group_id,
                user_id=current_user.user_id,
                slots=slots,
                status="approved",
                payment_reference=payment_reference,
            )
        )
        await db.delete(pending)
        await db.commit()
    except (WalletError, PaystackError, GroupPaymentError) as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You have already joined this group.")
    finally:
        await release_reference(payment_reference)

    logger.info("User %s joined group %s with %s slots", current_user.user_id, group_id, slots)
    return {
        "status": "success",
        "message": "Successfully joined group!",
        "data": {"group_id": group_id, "slots": slots},
    }


@router.get("/{group_id}")
async def group_details(group_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(
        sa_select(Group)
        .where(Group.group_id == group_id)
        .options(
            selectinload(Group.livestock),
            selectinload(Group.creator),
            selectinload(Group.members).selectinload(GroupMember.user),
        )
    )
    group = res.scalars().first()
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found.")
    out = group_out(group)
    creator_member = next((m for m in group.members if m.user_id == group.created_by), None)
    out["creatorInitialSlot"] = creator_member.slots if creator_member else group.slot_taken
    if group.livestock is not None:
        out["livestock"]["description"] = group.livestock.description
    out["creator"] = user_brief(group.creator) if group.creator else None
    out["participations"] = [
        {"slots": m.slots, "status": m.status, "joined_at": m.joined_at, "user": user_brief(m.user)}
        for m in group.members
    ]
    return {"status": "success", "message": "Group details retrieved successfully", "data": out}


@router.delete("/{group_id}")
async def delete_group(group_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_session)):
    res = await db.execute(sa_select(Group).where(Group.group_id == group_id).options(selectinload(Group.members)))
    group = res.scalars().first()
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    if group.created_by != current_user.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have permission to delete this group")
    if group.status not in ("pending", "active"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only pending or active groups can be deleted")

    if group.status == "active":
        others = await db.execute(
            sa_select(func.count(GroupMember.id)).where(
                GroupMember.group_id == group_id, GroupMember.user_id != current_user.user_id
            )
        )
        if others.scalar_one() > 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot delete group with active members. Please remove all members first.",
            )
        # creator's contribution goes back to the wallet
        await credit_wallet(
            db,
            current_user,
            Decimal(group.final_slot_price_taken),
            f"refund_{group.group_id}",
            f'Refund for deleted group "{group.group_name}"',
            payment_means="wallet",
            source="refund",
        )

    await db.delete(group)
    await db.commit()
    logger.info("Group %s deleted by %s", group_id, current_user.user_id)
    return {"status": "success", "message": "Group deleted successfully"}
