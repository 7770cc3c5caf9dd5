"""
Order API views.
Dashboard endpoints are scoped to the operator's store; courier endpoints are
public and authorized only by the delivery token.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, OpenApiResponse
from drf_spectacular.types import OpenApiTypes
from apps.accounts.permissions import IsStoreMember
from apps.orders.exceptions import OrderError, DeliveryTokenNotFound
from apps.orders.models import DeliveryIncident
from apps.orders.serializers import (
    OrderListSerializer,
    OrderDetailSerializer,
    OrderStatusHistorySerializer,
    DeliveryIncidentSerializer,
    IncidentRetrySerializer,
    StatusChangeSerializer,
    ConfirmOrderSerializer,
    OrderEditSerializer,
    DeliveryConfirmSerializer,
    DeliveryFailSerializer,
    RateDeliverySerializer,
    CancelDeliverySerializer,
    RetryCompleteSerializer,
    ScheduleRetrySerializer,
    ResolveIncidentSerializer,
)
from apps.orders.services.order_service import OrderService
from apps.orders.services.state_machine import OrderStateMachine
from apps.orders.services.confirmation_service import ConfirmationService
from apps.orders.services.courier_delivery_service import CourierDeliveryService
from apps.orders.services.incident_service import IncidentService
from common.services.logging_service import LoggingService
from common.throttling import DeliveryThrottle


def error_response(error: OrderError):
    return Response(error.as_response_data(), status=error.status_code)


def delivery_error_response(error: OrderError, token, request):
    """Error response for the token endpoints; unknown tokens are logged (possible enumeration)."""
    if isinstance(error, DeliveryTokenNotFound):
        LoggingService.log_invalid_delivery_token(token, request)
    return error_response(error)


ERROR_EXAMPLE = OpenApiExample(
    'Transition Not Allowed',
    value={
        'error': 'transition_not_allowed',
        'message': 'A delivered order cannot go back to pending.',
        'details': {'from': 'delivered', 'to': 'pending', 'suggestion': 'Use "returned" instead.'}
    },
    response_only=True
)


# ==================== Dashboard: orders ====================

@extend_schema(
    tags=['Orders'],
    summary='List orders',
    description='Orders of the current store, newest first. Soft-deleted orders are hidden by default.',
    parameters=[
        OpenApiParameter('status', OpenApiTypes.STR, description='Filter by order status'),
        OpenApiParameter('include_deleted', OpenApiTypes.BOOL, description='Include soft-deleted orders'),
    ],
    responses={200: OrderListSerializer(many=True)}
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreMember])
def order_list(request):
    include_deleted = request.query_params.get('include_deleted', '').lower() in ('1', 'true', 'yes')
    orders = OrderService.list_orders(
        request.user.store,
        status=request.query_params.get('status'),
        include_deleted=include_deleted
    )
    serializer = OrderListSerializer(orders, many=True)
    return Response(serializer.data)


@extend_schema(
    tags=['Orders'],
    summary='Retrieve, edit or delete an order',
    description='''
    **PATCH / PUT** edits customer data, carrier, payment method or line items.
    Sending `version` makes the edit conditional: if the order changed in the
    meantime the response is 409 and nothing is written.

    Editing label-relevant data clears the `printed` flag.

    **DELETE** permanently removes the order for store owners (committed stock is
    restored); for every other role the order is soft-deleted.
    ''',
    request=OrderEditSerializer,
    responses={
        200: OrderDetailSerializer,
        404: OpenApiResponse(description='Order not found'),
        409: OpenApiResponse(
            description='Version conflict',
            examples=[
                OpenApiExample(
                    'Stale Edit',
                    value={
                        'error': 'version_conflict',
                        'message': 'The order was modified by someone else.',
                        'details': {'current_version': 4, 'your_version': 3}
                    }
                )
            ]
        ),
    }
)
@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreMember])
def order_detail(request, pk):
    store = request.user.store
    try:
        if request.method == 'GET':
            order = OrderService.get_order(pk, store)
            return Response(OrderDetailSerializer(order).data)

        if request.method == 'DELETE':
            hard_deleted = OrderService.delete_order(pk, store, request.user, request=request)
            return Response({'deleted': True, 'permanent': hard_deleted}, status=status.HTTP_200_OK)

        serializer = OrderEditSerializer(data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        changes = dict(serializer.validated_data)
        expected_version = changes.pop('version', None)
        if expected_version is not None:
            order = OrderService.update_order_if_version(pk, store, request.user, changes, expected_version)
        else:
            order = OrderService.update_order(pk, store, request.user, changes)

        return Response(OrderDetailSerializer(order).data)

    except OrderError as e:
        return error_response(e)


@extend_schema(
    tags=['Order Lifecycle'],
    summary='Change order status',
    description='''
    Moves the order to `to_status` according to the transition table.

    **Business Rules:**
    - Same status is an idempotent no-op (version unchanged)
    - Entering `ready_to_ship` commits stock; a shortage rejects the whole change
    - `force` bypasses the table for owners and admins only; anyone else gets 403
    ''',
    request=StatusChangeSerializer,
    examples=[
        OpenApiExample('Dispatch', value={'to_status': 'ready_to_ship'}, request_only=True),
        OpenApiExample('Forced', value={'to_status': 'pending', 'force': True, 'notes': 'Customer called'}, request_only=True),
        ERROR_EXAMPLE,
    ],
    responses={
        200: OrderDetailSerializer,
        400: OpenApiResponse(description='Invalid status, transition not allowed or insufficient stock'),
        403: OpenApiResponse(description='Force requested without privilege'),
        404: OpenApiResponse(description='Order not found'),
    }
)
@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStoreMember])
def change_status(request, pk):
    serializer = StatusChangeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = OrderStateMachine.change_status(
            pk,
            request.user.store,
            serializer.validated_data['to_status'],
            request.user,
            force=serializer.validated_data['force'],
            notes=serializer.validated_data['notes'],
            request=request
        )
    except OrderError as e:
        return error_response(e)

    return Response(OrderDetailSerializer(order).data)


@extend_schema(
    tags=['Order Lifecycle'],
    summary='Confirm a pending order',
    description='''
    Assigns the carrier, applies an optional upsell and discount and issues the
    delivery token, all in one transaction.

    - No `carrier_id` makes it a store pickup order
    - `mark_as_prepaid` zeroes the amount to collect before the upsell is added
    - A second confirmation of the same order fails with `invalid_status`
    ''',
    request=ConfirmOrderSerializer,
    examples=[
        OpenApiExample(
            'With Upsell and Discount',
            value={
                'carrier_id': '3fa85f64-5717-4562-b3fc-2c963f66afa6',
                'upsell': {'product_id': '7c9e6679-7425-40de-944b-e07fc1f90ae7', 'quantity': 1},
                'discount': '5.00'
            },
            request_only=True
        ),
    ],
    responses={
        200: OpenApiResponse(description='Order confirmed; body holds `order` and `summary`'),
        400: OpenApiResponse(description='Order is not pending'),
        404: OpenApiResponse(description='Order, carrier or product not found'),
        500: OpenApiResponse(description='Confirmation failed and was rolled back'),
    }
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStoreMember])
def confirm_order(request, pk):
    serializer = ConfirmOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        order, summary = ConfirmationService.confirm(
            pk,
            request.user.store,
            request.user,
            carrier_id=data.get('carrier_id'),
            address=data.get('address'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            upsell=data.get('upsell'),
            discount=data.get('discount'),
            mark_as_prepaid=data['mark_as_prepaid'],
            prepaid_method=data.get('prepaid_method'),
        )
    except OrderError as e:
        return error_response(e)

    return Response({
        'order': OrderDetailSerializer(order).data,
        'summary': summary,
    })


@extend_schema(
    tags=['Order Lifecycle'],
    summary='Status history of an order',
    responses={200: OrderStatusHistorySerializer(many=True), 404: OpenApiResponse(description='Order not found')}
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreMember])
def order_history(request, pk):
    try:
        order = OrderService.get_order(pk, request.user.store, include_deleted=True)
    except OrderError as e:
        return error_response(e)

    entries = order.status_history.select_related('changed_by')
    return Response(OrderStatusHistorySerializer(entries, many=True).data)


# ==================== Public: courier delivery ====================

@extend_schema(
    tags=['Courier Delivery'],
    summary='Open the delivery page',
    description='''
    Public endpoint reached through the QR code. The token is the only credential.
    Returns the courier view, or a short summary when the order was already
    delivered or the delivery failed.
    ''',
    auth=[],
    responses={
        200: OpenApiResponse(description='Delivery view'),
        404: OpenApiResponse(description='Unknown or expired token'),
    }
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def delivery_lookup(request, token):
    try:
        return Response(CourierDeliveryService.delivery_view(token))
    except OrderError as e:
        return delivery_error_response(e, token, request)


@extend_schema(
    tags=['Courier Delivery'],
    summary='Confirm delivery',
    description='''
    Courier reports a successful handover and how the customer paid.
    Refused with 400 while the order has an active incident; use the retry endpoint instead.
    ''',
    auth=[],
    request=DeliveryConfirmSerializer,
    examples=[
        OpenApiExample('Cash', value={'payment_method': 'efectivo'}, request_only=True),
        OpenApiExample(
            'Short Payment',
            value={'payment_method': 'cash', 'has_amount_discrepancy': True, 'amount_collected': '80.00'},
            request_only=True
        ),
    ],
    responses={
        200: OpenApiResponse(description='Delivered; body holds the payment reconciliation'),
        400: OpenApiResponse(description='Active incident or already delivered'),
        404: OpenApiResponse(description='Unknown or expired token'),
    }
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def delivery_confirm(request, token):
    serializer = DeliveryConfirmSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        order, payment_info = CourierDeliveryService.confirm_delivery(
            token,
            data['payment_method'],
            has_discrepancy=data['has_amount_discrepancy'],
            amount_collected=data.get('amount_collected'),
            notes=data['notes']
        )
    except OrderError as e:
        return delivery_error_response(e, token, request)

    return Response({
        'message': 'Delivery confirmed',
        'order_id': str(order.id),
        'status': order.status,
        'payment_info': payment_info,
    })


@extend_schema(
    tags=['Courier Delivery'],
    summary='Report failed delivery',
    description='Moves the order to `incident` and opens a delivery incident for the store to triage.',
    auth=[],
    request=DeliveryFailSerializer,
    responses={
        200: OpenApiResponse(description='Failure recorded'),
        400: OpenApiResponse(description='Active incident, already delivered or missing reason'),
        404: OpenApiResponse(description='Unknown or expired token'),
    }
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def delivery_fail(request, token):
    serializer = DeliveryFailSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = CourierDeliveryService.fail_delivery(
            token,
            serializer.validated_data['delivery_failure_reason'],
            notes=serializer.validated_data['failure_notes']
        )
    except OrderError as e:
        return delivery_error_response(e, token, request)

    return Response({
        'message': 'Delivery failure recorded',
        'order_id': str(order.id),
        'status': order.status,
        'has_active_incident': order.has_active_incident,
    })


@extend_schema(
    tags=['Incidents'],
    summary='Complete a scheduled retry',
    description='Courier reports the outcome of the retry an operator scheduled for the open incident.',
    auth=[],
    request=RetryCompleteSerializer,
    responses={
        200: OpenApiResponse(description='Retry outcome recorded'),
        400: OpenApiResponse(description='No retry scheduled'),
        404: OpenApiResponse(description='Unknown token or no active incident'),
    }
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def delivery_retry(request, token):
    serializer = RetryCompleteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        order, incident, payment_info = IncidentService.complete_retry(
            token,
            data['outcome'],
            payment_method=data.get('payment_method'),
            has_discrepancy=data['has_amount_discrepancy'],
            amount_collected=data.get('amount_collected'),
            notes=data['notes']
        )
    except OrderError as e:
        return delivery_error_response(e, token, request)

    return Response({
        'order_id': str(order.id),
        'status': order.status,
        'incident': DeliveryIncidentSerializer(incident).data,
        'payment_info': payment_info,
    })


@extend_schema(
    tags=['Courier Delivery'],
    summary='Rate a delivery',
    description='Customer rates a confirmed delivery (1-5). Rating closes the delivery link.',
    auth=[],
    request=RateDeliverySerializer,
    responses={
        200: OpenApiResponse(description='Rating stored'),
        400: OpenApiResponse(description='Not delivered yet or already rated'),
        404: OpenApiResponse(description='Order not found'),
    }
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def rate_delivery(request, pk):
    serializer = RateDeliverySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = CourierDeliveryService.rate_delivery(
            pk,
            serializer.validated_data['rating'],
            comment=serializer.validated_data['comment']
        )
    except OrderError as e:
        return error_response(e)

    return Response({'message': 'Thanks for your rating', 'rating': order.delivery_rating})


@extend_schema(
    tags=['Courier Delivery'],
    summary='Cancel after a failed delivery',
    auth=[],
    request=CancelDeliverySerializer,
    responses={
        200: OpenApiResponse(description='Order cancelled'),
        400: OpenApiResponse(description='Delivery did not fail'),
        404: OpenApiResponse(description='Order not found'),
    }
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([DeliveryThrottle])
def cancel_delivery(request, pk):
    serializer = CancelDeliverySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = CourierDeliveryService.cancel_after_failure(pk, notes=serializer.validated_data['notes'])
    except OrderError as e:
        return error_response(e)

    return Response({'message': 'Order cancelled', 'order_id': str(order.id), 'status': order.status})


# ==================== Dashboard: incidents ====================

@extend_schema(
    tags=['Incidents'],
    summary='List delivery incidents',
    parameters=[OpenApiParameter('status', OpenApiTypes.STR, description='active, resolved or expired')],
    responses={200: DeliveryIncidentSerializer(many=True)}
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreMember])
def incident_list(request):
    incidents = (
        DeliveryIncident.objects
        .filter(store=request.user.store, order__deleted_at__isnull=True)
        .select_related('order')
        .prefetch_related('retries')
    )
    status_filter = request.query_params.get('status')
    if status_filter:
        incidents = incidents.filter(status=status_filter)
    return Response(DeliveryIncidentSerializer(incidents, many=True).data)


@extend_schema(
    tags=['Incidents'],
    summary='Schedule a delivery retry',
    request=ScheduleRetrySerializer,
    responses={
        201: IncidentRetrySerializer,
        400: OpenApiResponse(description='Incident closed, retry already scheduled or no retries left'),
        404: OpenApiResponse(description='Incident not found'),
    }
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStoreMember])
def schedule_retry(request, pk):
    serializer = ScheduleRetrySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        retry = IncidentService.schedule_retry(
            pk,
            request.user.store,
            request.user,
            scheduled_date=serializer.validated_data.get('scheduled_date'),
            notes=serializer.validated_data['notes']
        )
    except OrderError as e:
        return error_response(e)

    return Response(IncidentRetrySerializer(retry).data, status=status.HTTP_201_CREATED)


@extend_schema(
    tags=['Incidents'],
    summary='Resolve an incident',
    description='''
    - `delivered`: order becomes delivered (payment method required)
    - `cancelled`: order is cancelled and committed stock restored
    - `customer_rejected`: order is rejected and committed stock restored
    - `other`: incident closes, order status unchanged
    ''',
    request=ResolveIncidentSerializer,
    responses={
        200: DeliveryIncidentSerializer,
        400: OpenApiResponse(description='Incident already closed'),
        404: OpenApiResponse(description='Incident not found'),
    }
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStoreMember])
def resolve_incident(request, pk):
    serializer = ResolveIncidentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        incident, order = IncidentService.resolve(
            pk,
            request.user.store,
            request.user,
            data['resolution_type'],
            notes=data['notes'],
            payment_method=data.get('payment_method')
        )
    except OrderError as e:
        return error_response(e)

    return Response({
        'incident': DeliveryIncidentSerializer(incident).data,
        'order_status': order.status,
    })
