# Overview: Flask API routes for bookings; commit, cancel, history and staff lifecycle actions.

"""
Booking API Routes

DESIGN:
- POST /api/bookings takes the wizard's reviewed draft and hands it to the
  booking service in one call; the service owns the unit of work
- Cancellation answers 200 when the refund went through and 202 when the
  booking is cancelled but the refund is pending support
- Staff move bookings through check-in and completion, and settle
  pending refunds

ERROR MAPPING:
- 400: malformed draft (ValidationError) or a suite/location mismatch
- 402: InsufficientCreditError, with the alternatives offered to the member
- 404: booking not found (or not the caller's)
- 409: suite taken by a concurrent booker, or booking no longer cancellable
- 422: wizard rules (missing selection, sample cap)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_staff
from ..services import booking_service
from ..services.booking_service import (
    BookingError,
    BookingNotFoundError,
    CancelError,
    SuiteUnavailableError,
)
from ..services.booking_wizard import BookingDraft, WizardError
from ..services.credit_ledger_service import InsufficientCreditError
from ..validation import ValidationError


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


@bookings_bp.get("")
@require_auth
def list_bookings_route():
    """
    The caller's bookings.

    Query params:
    - scope: upcoming (default) | past
    - limit: past bookings only (default 10)
    """
    user_id = g.identity.get_current_user_id()
    scope = request.args.get("scope", "upcoming")

    if scope == "upcoming":
        bookings = booking_service.list_upcoming_bookings(user_id)
    elif scope == "past":
        try:
            limit = int(request.args.get("limit", 10))
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400
        bookings = booking_service.list_past_bookings(user_id, limit=limit)
    else:
        return jsonify({"error": "scope must be 'upcoming' or 'past'"}), 400

    return jsonify({"scope": scope, "bookings": [b.to_dict() for b in bookings]}), 200


@bookings_bp.get("/<int:booking_id>")
@require_auth
def get_booking_route(booking_id: int):
    owner = None if g.identity.is_staff else g.identity.get_current_user_id()
    booking = booking_service.get_booking(booking_id, owner)
    if not booking:
        return jsonify({"error": "Booking not found"}), 404
    return jsonify(booking.to_dict()), 200


@bookings_bp.post("")
@require_auth
def create_booking_route():
    """
    Commit a reviewed draft.

    Request body:
    {
        "location_id": 1,
        "suite_id": 3,
        "date": "2026-10-20",
        "time": "12:30",
        "duration": 15,
        "payment_method": "credits",
        "preferences": {"lighting": 60, "music": "spa", "samples": ["lavender-soap"]}
    }

    Returns:
        201: Booking confirmed
        400/402/409/422: see module docstring
        500: Server error
    """
    try:
        draft = BookingDraft.from_dict(request.get_json(silent=True))
        booking = booking_service.commit_booking(draft, g.identity)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except WizardError as e:
        return jsonify({"error": str(e)}), 422
    except InsufficientCreditError as e:
        return jsonify(e.to_dict()), 402
    except SuiteUnavailableError as e:
        return jsonify({"error": str(e), "code": "suite_unavailable"}), 409
    except BookingError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(booking.to_dict()), 201


@bookings_bp.post("/<int:booking_id>/cancel")
@require_auth
def cancel_booking_route(booking_id: int):
    """
    Cancel a confirmed booking.

    Returns:
        200: cancelled and refunded (status "cancelled")
        202: cancelled, refund pending support (status "refund_pending")
        404: booking not found
        409: booking is not confirmed
    """
    try:
        result = booking_service.cancel_booking(booking_id, g.identity)
    except BookingNotFoundError:
        return jsonify({"error": "Booking not found"}), 404
    except CancelError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to cancel booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 202 if result.refund_pending else 200


# =============================================================================
# STAFF ACTIONS
# =============================================================================

@bookings_bp.post("/<int:booking_id>/check-in")
@require_auth
@require_staff
def check_in_route(booking_id: int):
    try:
        booking = booking_service.check_in_booking(booking_id)
    except BookingNotFoundError:
        return jsonify({"error": "Booking not found"}), 404
    except BookingError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to check in booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(booking.to_dict()), 200


@bookings_bp.post("/<int:booking_id>/complete")
@require_auth
@require_staff
def complete_route(booking_id: int):
    try:
        booking = booking_service.complete_booking(booking_id)
    except BookingNotFoundError:
        return jsonify({"error": "Booking not found"}), 404
    except BookingError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to complete booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(booking.to_dict()), 200


@bookings_bp.post("/<int:booking_id>/settle-refund")
@require_auth
@require_staff
def settle_refund_route(booking_id: int):
    """Complete a refund left pending by a failed cancellation."""
    try:
        result = booking_service.settle_pending_refund(booking_id)
    except BookingNotFoundError:
        return jsonify({"error": "Booking not found"}), 404
    except CancelError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to settle refund for booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Refund for booking %s settled by %s", booking_id, g.identity.get_current_user_id())
    return jsonify(result.to_dict()), 200
