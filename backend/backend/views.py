from django.http import JsonResponse
from django.middleware.csrf import get_token
from django.views.decorators.http import require_GET


def csrf_failure(request, reason=""):
    return JsonResponse({"detail": "Invalid CSRF token."}, status=403)


@require_GET
def csrf_token_view(request):
    return JsonResponse({"csrfToken": get_token(request)})
