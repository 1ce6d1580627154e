"""Error types shared by the stores, the controller and the web layer"""


class WheelError(Exception):
    """Base error; error_type is what clients receive in spin_error/notice payloads"""
    error_type = 'wheel_error'
    message = 'Prize wheel error'

    def __init__(self, message=None):
        super().__init__(message or self.message)

    def to_payload(self):
        return {'error_type': self.error_type, 'message': str(self)}


class StoreUnavailable(WheelError):
    error_type = 'store_unavailable'
    message = 'Record store is not reachable'


class ConfigUnavailable(WheelError):
    error_type = 'config_unavailable'
    message = 'Wheel configuration could not be loaded. Please retry.'


class SyncError(WheelError):
    error_type = 'sync_error'
    message = 'Live update failed, showing last known data'


class AuthCheckFailed(WheelError):
    error_type = 'auth_check_failed'
    message = 'Connection failed. Please try again.'


class AlreadyPlayed(WheelError):
    error_type = 'already_played'
    message = 'You have already played! Only one spin allowed per person.'


class NotAuthorized(WheelError):
    error_type = 'not_authorized'
    message = 'Please enter your name before spinning.'


class AlreadySpinning(WheelError):
    error_type = 'wheel_busy'
    message = 'Wheel is currently spinning. Please wait.'


class EmptyWheel(WheelError):
    error_type = 'empty_list'
    message = 'List is empty!'


class WriteFailed(WheelError):
    error_type = 'write_failed'
    message = 'Your result could not be saved.'


class DuplicateRecord(WheelError):
    error_type = 'duplicate_record'
    message = 'A record for this participant already exists'


class InvalidName(WheelError):
    error_type = 'invalid_name'
    message = 'Please enter your name.'


class UnpublishedItems(WheelError):
    error_type = 'items_not_published'
    message = 'Your list has local edits. Restore the published prizes before spinning.'
