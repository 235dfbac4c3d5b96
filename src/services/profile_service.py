import logging

from extensions import db
from src.models import Profile
from src.services.db_context import db_context, rollback

logger = logging.getLogger("profile_service")


def _profile_payload(p: Profile) -> dict:
    return {
        "id": p.id,
        "email": p.email,
        "role": p.role,
        "first_name": p.first_name,
        "last_name": p.last_name,
        "speciality": p.speciality,
        "phone": p.phone,
        "is_active": p.is_active,
    }


def get_all_profiles():
    try:
        with db_context():
            return Profile.query.order_by(Profile.first_name.asc()).all()
    except Exception as e:
        logger.exception(f"[get_all_profiles] Failed: {e}")
        return []


def get_profiles_by_role(role: str):
    """Active staff members holding ``role``."""
    try:
        with db_context():
            return (
                Profile.query
                .filter(Profile.role == role, Profile.is_active.is_(True))
                .order_by(Profile.first_name.asc())
                .all()
            )
    except Exception as e:
        logger.exception(f"[get_profiles_by_role] Failed for role={role}: {e}")
        return []


def get_doctors():
    return get_profiles_by_role("doctor")


def get_profile(profile_id: str):
    try:
        with db_context():
            return db.session.get(Profile, profile_id)
    except Exception as e:
        logger.exception(f"[get_profile] Failed for id={profile_id}: {e}")
        return None


def get_user_profile(user_id: str) -> dict | None:
    """Active profile of an authenticated user, as a plain dict for the session mirror."""
    try:
        with db_context():
            p = Profile.query.filter_by(id=user_id, is_active=True).first()
            if not p:
                logger.warning(f"[get_user_profile] No active profile for user={user_id}")
                return None
            return _profile_payload(p)
    except Exception as e:
        logger.exception(f"[get_user_profile] Failed for user={user_id}: {e}")
        return None


def create_profile(
    *,
    user_id: str,
    email: str,
    first_name: str,
    last_name: str,
    role: str,
    phone: str,
    speciality: str | None = None,
):
    """Create the staff row that goes with a freshly signed-up auth user."""
    try:
        with db_context():
            profile = Profile(
                id=user_id,
                email=email.strip().lower(),
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                role=role,
                phone=phone,
                speciality=speciality or None,
                is_active=True,
            )
            db.session.add(profile)
            db.session.commit()
            logger.info(f"[create_profile] Created profile {user_id} role={role}")
            return profile
    except Exception as e:
        rollback()
        logger.exception(f"[create_profile] Failed for user={user_id}, email={email}: {e}")
        return None


def update_profile(profile_id: str, updates: dict):
    try:
        with db_context():
            profile = db.session.get(Profile, profile_id)
            if not profile:
                return None

            for key, value in updates.items():
                if key in ("id", "email", "created_at"):
                    continue
                setattr(profile, key, value)

            db.session.commit()
            return profile
    except Exception as e:
        rollback()
        logger.exception(f"[update_profile] Failed for id={profile_id}: {e}")
        return None


def get_profile_stats() -> dict:
    try:
        with db_context():
            profiles = Profile.query.with_entities(Profile.role, Profile.is_active).all()
    except Exception as e:
        logger.exception(f"[get_profile_stats] Failed: {e}")
        profiles = []

    total = len(profiles)
    active = sum(1 for _, is_active in profiles if is_active)
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "doctors": sum(1 for role, _ in profiles if role == "doctor"),
        "admins": sum(1 for role, _ in profiles if role == "admin"),
        "secretaries": sum(1 for role, _ in profiles if role == "secretary"),
    }
