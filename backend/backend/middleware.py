import logging

from django.http import JsonResponse

logger = logging.getLogger(__name__)


class JsonExceptionMiddleware:
    """
    Last-resort handler for API requests.

    Anything that escaped the view is logged with its traceback and the
    caller only sees a generic 500.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not request.path.startswith("/api/"):
            return None
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return JsonResponse({"detail": "Internal server error."}, status=500)
