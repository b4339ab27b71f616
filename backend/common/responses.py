from rest_framework.response import Response


def error_response(exc):
    """Render a services.exceptions.MarketplaceError as an API response."""
    body = {
        'success': False,
        'error': exc.code,
        'message': exc.message,
    }
    if exc.details:
        body.update(exc.details)
    return Response(body, status=exc.status_code)
