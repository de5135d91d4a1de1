import logging

from sqlalchemy import or_

from bucketlistt import pricing
from bucketlistt.errors import Forbidden, InvalidInput, NotFound
from bucketlistt.models import Destination, Experience, db

logger = logging.getLogger(__name__)

ACTIONS = ("toggle", "toggleForAgent")


def toggle_experience(auth, experience_id, action):
    """Flip ``is_active`` (vendor on own experience, or admin) or ``for_agent`` (admin)."""
    if not auth.has_role("vendor", "admin"):
        raise Forbidden("Only vendors and admins can manage experiences")
    if not experience_id:
        raise InvalidInput("Experience ID is required")
    if action == "toggleForAgent" and not auth.is_admin:
        raise Forbidden("Only admins can toggle for_agent status")
    if action not in ACTIONS:
        raise InvalidInput('Invalid action. Use "toggle" or "toggleForAgent"')

    experience = db.session.get(Experience, experience_id)
    if experience is None or (not auth.is_admin and experience.vendor_id != auth.user_id):
        raise NotFound("Experience not found or access denied")

    if action == "toggle":
        experience.is_active = not experience.is_active
        db.session.commit()
        state = "activated" if experience.is_active else "deactivated"
        logger.info(f"Experience {experience.id} {state} by user {auth.user_id}")
        return {"id": experience.id, "is_active": experience.is_active}, f"Experience {state} successfully"

    experience.for_agent = not experience.for_agent
    db.session.commit()
    state = "enabled" if experience.for_agent else "disabled"
    logger.info(f"Experience {experience.id} {state} for agents by user {auth.user_id}")
    return {"id": experience.id, "for_agent": experience.for_agent}, f"Experience {state} for agents successfully"


def list_destinations():
    return Destination.query.order_by(Destination.name.asc()).all()


def list_experiences(destination_id=None, category=None, search=None, for_agent=None):
    query = Experience.query.filter_by(is_active=True)
    if destination_id:
        query = query.filter_by(destination_id=destination_id)
    if category:
        query = query.filter(Experience.category.ilike(category))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Experience.title.ilike(pattern),
            Experience.description.ilike(pattern),
            Experience.location.ilike(pattern),
        ))
    if for_agent is not None:
        query = query.filter_by(for_agent=for_agent)
    return query.order_by(Experience.created_at.desc()).all()


def get_experience(experience_id):
    experience = db.session.get(Experience, experience_id)
    if experience is None or not experience.is_active:
        raise NotFound("Experience not found")
    return experience


def serialize_destination(destination):
    return {"id": destination.id, "name": destination.name, "description": destination.description}


def serialize_activity(experience, activity):
    return {
        "id": activity.id,
        "name": activity.name,
        "price": activity.price,
        "discounted_price": activity.discounted_price,
        "currency": activity.currency or experience.currency,
        "pricing": pricing.resolve_display_price(experience, activity),
    }


def serialize_experience(experience, detail=False):
    data = {
        "id": experience.id,
        "title": experience.title,
        "location": experience.location,
        "category": experience.category,
        "currency": experience.currency,
        "destination": experience.destination.name if experience.destination else None,
        "pricing": pricing.resolve_display_price(experience),
    }
    if detail:
        data["description"] = experience.description
        data["location2"] = experience.location2
        data["vendor_id"] = experience.vendor_id
        data["activities"] = [
            serialize_activity(experience, a) for a in experience.activities if a.is_active
        ]
    return data
