"""Error taxonomy shared by every service.

Services raise these; the HTTP layer maps ``status_code`` and ``code`` onto
the response. Anything else that escapes a service is a bug or a dependency
failure.
"""


class QuizpotError(Exception):
    status_code = 500
    code = 'internal_error'
    default_message = 'Internal error'

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        payload = {'error': self.code, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(QuizpotError):
    status_code = 400
    code = 'validation_error'
    default_message = 'Invalid request'


class NotFound(QuizpotError):
    status_code = 404
    code = 'not_found'
    default_message = 'Not found'


class StateConflict(QuizpotError):
    status_code = 409
    code = 'state_conflict'
    default_message = 'Conflicting state'


class AlreadyAnswered(StateConflict):
    code = 'already_answered'
    default_message = 'Question already answered'


class AlreadyJoined(StateConflict):
    code = 'already_joined'
    default_message = 'Already joined this period'


class InvalidState(StateConflict):
    code = 'invalid_state'
    default_message = 'Operation not allowed in the current state'


class SubmissionRateExceeded(StateConflict):
    status_code = 429
    code = 'submission_rate_exceeded'
    default_message = 'Too many answers submitted for this session'


class AlreadyClaimedToday(StateConflict):
    code = 'already_claimed_today'
    default_message = 'Reward already claimed today'


class DailyLimitReached(StateConflict):
    code = 'daily_limit_reached'
    default_message = 'Daily ad reward limit reached'


class DailyClaimNotAvailable(StateConflict):
    code = 'daily_claim_not_available'
    default_message = 'Daily credits are not available yet'


class AlreadyProcessed(StateConflict):
    code = 'already_processed'
    default_message = 'Payment reference already processed'


class InsufficientFunds(QuizpotError):
    status_code = 402
    code = 'insufficient_funds'
    default_message = 'Insufficient funds'


class InsufficientCredits(InsufficientFunds):
    code = 'insufficient_credits'
    default_message = 'Insufficient credits'


class PaymentRequired(QuizpotError):
    status_code = 402
    code = 'payment_required'
    default_message = 'Payment required'


class DependencyError(QuizpotError):
    status_code = 503
    code = 'dependency_error'
    default_message = 'A dependent service failed'


class ContentUnavailable(DependencyError):
    code = 'content_unavailable'
    default_message = 'Not enough questions available'
