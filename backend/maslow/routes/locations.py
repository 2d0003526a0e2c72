# Overview: Flask API routes for locations and suites; inventory snapshots and advisory slot labels.

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Location, Suite
from ..decorators import require_auth, require_staff
from ..services import availability_service
from ..services.availability_service import AvailabilityError, TIME_WINDOWS
from ..validation import (
    LOCATION_POLICY,
    SUITE_POLICY,
    ValidationError,
    enforce_rules_suite,
    validate_payload,
)


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
def list_locations():
    locations = (
        db.session.query(Location)
        .filter(Location.is_active.is_(True))
        .order_by(Location.name.asc())
        .all()
    )
    return jsonify([location.to_dict() for location in locations]), 200


@locations_bp.post("")
@require_auth
@require_staff
def create_location():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
        location = availability_service.create_location(patch["name"], patch.get("address"))
    except (ValidationError, AvailabilityError) as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("Location %s created: %s", location.id, location.name)
    return jsonify(location.to_dict()), 201


@locations_bp.get("/<int:location_id>")
@require_auth
def get_location(location_id: int):
    location = availability_service.get_location(location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404
    return jsonify(location.to_dict()), 200


@locations_bp.get("/<int:location_id>/suites")
@require_auth
def list_suites(location_id: int):
    """
    Suites currently available at a location.

    This is a snapshot: a listed suite can still be taken by someone else
    before the booking is committed.
    """
    if not availability_service.get_location(location_id):
        return jsonify({"error": "Location not found"}), 404
    suites = availability_service.list_available_suites(location_id)
    return jsonify({"suites": [suite.to_dict() for suite in suites]}), 200


@locations_bp.post("/<int:location_id>/suites")
@require_auth
@require_staff
def create_suite(location_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Suite, payload=payload, policy=SUITE_POLICY, partial=False)
        enforce_rules_suite(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not availability_service.get_location(location_id):
        return jsonify({"error": "Location not found"}), 404

    suite_number = patch.pop("suite_number")
    try:
        suite = availability_service.create_suite(location_id, suite_number, **patch)
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": f"Suite {suite_number} already exists at this location"}), 409

    return jsonify(suite.to_dict()), 201


@locations_bp.get("/<int:location_id>/slots")
@require_auth
def list_slots(location_id: int):
    """
    Bookable start times for a window, each with an advisory queue label.

    Query params:
    - window: morning | afternoon | evening | lateNight (required)

    The queue estimate is synthetic and only labels the slot; booking a
    "Full" slot is still allowed.
    """
    if not availability_service.get_location(location_id):
        return jsonify({"error": "Location not found"}), 404

    window = request.args.get("window")
    if window not in TIME_WINDOWS:
        return jsonify({"error": f"window must be one of {list(TIME_WINDOWS)}"}), 400

    return jsonify({
        "location_id": location_id,
        "window": window,
        "slots": availability_service.list_slots(window),
    }), 200
