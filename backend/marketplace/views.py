import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import IsOperator, IsRequester
from common.responses import error_response
from services.exceptions import MarketplaceError, NotOwnerError, RequestNotFoundError
from services.matching import (
    accept_dispatch,
    decline_dispatch,
    find_alternative_operators,
    get_dispatch_queue,
    open_requests_for_operator,
)
from services.negotiation import accept_quote, decline_quote, list_quotes, submit_quote
from services.request_management import cancel_request, create_service_request, get_request
from .models import ServiceRequest
from .serializers import (
    CancelSerializer,
    CandidateSerializer,
    DispatchQueueEntrySerializer,
    QuoteSerializer,
    QuoteSubmitSerializer,
    ServiceRequestCreateSerializer,
    ServiceRequestSerializer,
)

logger = logging.getLogger(__name__)


# ==================== Requester APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRequester])
def create_request(request):
    """Post a service request; emergencies go straight to the dispatch queue"""
    serializer = ServiceRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = create_service_request(request.user, **serializer.validated_data)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        **result.as_dict(),
        'request': ServiceRequestSerializer(result.request, context={'request': request}).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRequester])
def my_requests(request):
    """Requester's requests, newest first; ?status= filters"""
    requests_qs = ServiceRequest.objects.filter(requester=request.user).select_related('operator')
    status_filter = request.query_params.get('status')
    if status_filter:
        requests_qs = requests_qs.filter(status=status_filter)

    serializer = ServiceRequestSerializer(requests_qs, many=True, context={'request': request})
    return Response({'count': len(serializer.data), 'requests': serializer.data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def request_detail(request, request_id):
    try:
        service_request = get_request(request.user, request_id)
    except MarketplaceError as e:
        return error_response(e)

    serializer = ServiceRequestSerializer(service_request, context={'request': request})
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRequester])
def cancel_service_request(request, request_id):
    """Cancel a request; an assigned request cancels its job without penalty"""
    serializer = CancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = cancel_request(request.user, request_id, serializer.validated_data['reason'])
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'request_id': result.request.id,
        'status': result.request.status,
        'cancelled_at': result.request.cancelled_at,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRequester])
def request_quotes(request, request_id):
    try:
        service_request, quotes = list_quotes(request.user, request_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'request_id': service_request.id,
        'negotiation_status': service_request.negotiation_status,
        'quote_window_expires_at': service_request.quote_window_expires_at,
        'quotes': QuoteSerializer(quotes, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRequester])
def accept_request_quote(request, request_id, quote_id):
    """Accept a quote; every other pending quote on the request is declined"""
    try:
        result = accept_quote(request.user, request_id, quote_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'quote': QuoteSerializer(result.quote).data,
        **result.extra,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRequester])
def decline_request_quote(request, request_id, quote_id):
    try:
        result = decline_quote(request.user, request_id, quote_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'quote': QuoteSerializer(result.quote).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRequester])
def dispatch_queue(request, request_id):
    """Emergency dispatch progress, with lazy expiry applied"""
    if not ServiceRequest.objects.filter(id=request_id, requester=request.user).exists():
        return error_response(RequestNotFoundError())

    try:
        entries = get_dispatch_queue(request_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'request_id': request_id,
        'entries': DispatchQueueEntrySerializer(entries, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRequester])
def alternative_operators(request, request_id):
    """Eligible operators who have not declined, best rated first"""
    try:
        service_request = ServiceRequest.objects.get(id=request_id)
    except ServiceRequest.DoesNotExist:
        return error_response(RequestNotFoundError())
    if service_request.requester_id != request.user.id:
        return error_response(NotOwnerError())

    limit = request.query_params.get('limit')
    candidates = find_alternative_operators(service_request, limit=int(limit) if limit and limit.isdigit() else None)
    return Response({
        'request_id': service_request.id,
        'count': len(candidates),
        'operators': CandidateSerializer(candidates, many=True).data,
    })


# ==================== Operator APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsOperator])
def available_requests(request):
    """Open requests this operator may quote on from their online tier"""
    profile = request.user.operator_profile
    if not profile.is_online:
        return Response({
            'requests': [],
            'count': 0,
            'message': 'Go online on a tier to see requests near you.'
        })

    matches = open_requests_for_operator(profile)
    data = []
    for service_request, distance in matches:
        item = ServiceRequestSerializer(service_request, context={'request': request}).data
        item['distance_km'] = round(distance, 2) if distance is not None else None
        data.append(item)
    return Response({'requests': data, 'count': len(data), 'tier': profile.online_tier})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsOperator])
def submit_request_quote(request, request_id):
    serializer = QuoteSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = submit_quote(request.user, request_id, **serializer.validated_data)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'quote_id': result.quote.id,
        'status': result.quote.status,
        'quote': QuoteSerializer(result.quote).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsOperator])
def accept_emergency(request, request_id):
    """Accept the emergency offer currently notified to this operator"""
    try:
        result = accept_dispatch(request.user, request_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'request': ServiceRequestSerializer(result.request, context={'request': request}).data,
        **result.extra,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsOperator])
def decline_emergency(request, request_id):
    try:
        result = decline_dispatch(request.user, request_id)
    except MarketplaceError as e:
        return error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'request_id': result.request.id,
        **result.extra,
    })
