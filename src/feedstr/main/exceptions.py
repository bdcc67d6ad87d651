class FeedstrException(Exception):
    pass


class BadRequestException(FeedstrException):
    pass


class NotFoundException(FeedstrException):
    pass


class NotReadyException(FeedstrException):
    pass


class InvalidFeedException(BadRequestException):
    """URL does not point at a parseable RSS/Atom feed."""


class FeedAlreadyExistsException(FeedstrException):
    pass


class FeedFetchException(FeedstrException):
    """Transient network or parse failure while fetching a feed."""


class UnresolvableTimestampException(FeedstrException):
    pass


class PersistenceException(FeedstrException):
    pass


class RelayException(FeedstrException):
    pass


class RelayRejectedException(RelayException):
    pass


# Map exceptions to (status_code, error_message, error_code)
# error_message None means str(exc) is used
EXCEPTION_MAP = {
    BadRequestException: (400, None, 9001),
    InvalidFeedException: (400, None, 9002),
    NotFoundException: (404, None, 9003),
    FeedAlreadyExistsException: (409, None, 9004),
    PersistenceException: (500, "Failed to save feed to database", 9005),
    NotReadyException: (503, "Service is starting up", 9006),
}
