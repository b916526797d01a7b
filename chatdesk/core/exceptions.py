# chatdesk/core/exceptions.py
"""Domain errors raised by services and translated to HTTP responses in main.py"""


class ChatdeskError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ChatdeskError):
    """Missing identifiers, invalid enum values, out-of-range input"""
    status_code = 400


class ForbiddenError(ChatdeskError):
    status_code = 403


class NotFoundError(ChatdeskError):
    status_code = 404


class VisitorNotFound(NotFoundError):
    def __init__(self, visitor_id: str):
        super().__init__("Visitor not found")
        self.visitor_id = visitor_id


class AIUnavailableError(BadRequestError):
    """AI disabled for the tenant or no credential configured"""
