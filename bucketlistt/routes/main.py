from flask import Blueprint, jsonify, request

from bucketlistt import experiences

main_bp = Blueprint('main', __name__)


@main_bp.route("/api/destinations")
def destinations():
    return jsonify([experiences.serialize_destination(d) for d in experiences.list_destinations()])


@main_bp.route("/api/experiences")
def experience_list():
    items = experiences.list_experiences(
        destination_id=request.args.get("destination_id", type=int),
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return jsonify([experiences.serialize_experience(e) for e in items])


@main_bp.route("/api/experiences/<int:experience_id>")
def experience_detail(experience_id):
    experience = experiences.get_experience(experience_id)
    return jsonify(experiences.serialize_experience(experience, detail=True))
