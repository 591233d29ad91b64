class DartsError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class NotFound(DartsError):
    status_code = 404


class Conflict(DartsError):
    status_code = 409


class ValidationError(DartsError):
    status_code = 400
