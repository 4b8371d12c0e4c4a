"""
Domain exceptions for TripFlow services.
Routes translate these into JSON error responses.
"""


class TripFlowError(Exception):
    """Base class for expected business errors."""

    code = 'tripflow_error'
    status = 400


class PlanLimitExceeded(TripFlowError):
    """Raised when a user exceeds their plan limits."""

    code = 'plan_limit_exceeded'
    status = 403

    def __init__(self, current: int, maximum: int, remaining: int = 0,
                 limit_name: str = 'déplacements'):
        self.limit_name = limit_name
        self.current = current
        self.maximum = maximum
        self.remaining_trips = remaining
        super().__init__(
            f"Limite du plan atteinte : {limit_name} ({current}/{maximum})"
        )

    @property
    def max_trips(self) -> int:
        return self.maximum


class PlanNotFound(TripFlowError):
    """Raised when a plan id falls outside the catalog."""

    code = 'plan_not_found'
    status = 400

    def __init__(self, plan_id):
        self.plan_id = plan_id
        super().__init__(f"Plan non reconnu : {plan_id}")


class InvalidUserProfile(TripFlowError):
    """Raised when a profile lacks the identity fields the engine needs."""

    code = 'invalid_user_profile'
    status = 400


class TrialNotAllowed(TripFlowError):
    """Raised when a trial is requested by an ineligible user."""

    code = 'trial_not_allowed'
    status = 409


class ResourceNotFound(TripFlowError):
    """Raised when a requested record does not exist."""

    code = 'not_found'
    status = 404

    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} introuvable : {identifier}")


class InvalidStatusTransition(TripFlowError):
    """Raised when a trip status change is not allowed by the state machine."""

    code = 'invalid_transition'
    status = 409

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Transition impossible : {current.value} -> {target.value}")


class UserAlreadyExists(TripFlowError):
    """Raised on signup when the uid or email is already registered."""

    code = 'conflict'
    status = 409


class EmailDeliveryError(TripFlowError):
    """Raised when a trip report could not be sent."""

    code = 'email_delivery_failed'
    status = 502


class InvalidTripDates(TripFlowError):
    """Raised when a trip would return before it departs."""

    code = 'validation_error'
    status = 400

    def __init__(self, departure, return_date):
        self.departure = departure
        self.return_date = return_date
        super().__init__('La date de retour doit être postérieure au départ.')
