import logging
from typing import Optional

from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.parsers import JSONParser
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response
from rest_framework.views import APIView

from eventstore.exceptions import (
    ERROR_INVALID_POST_BODY,
    ERROR_INVALID_PUT_BODY,
    ERROR_UNEXPECTED,
    EventStoreError,
    InvalidBody,
    KeyDeleted,
    KeyExists,
    KeyNotFound,
)
from eventstore.renderers import IgnoreClientContentNegotiation, PlainTextParser, PlainTextRenderer
from eventstore.serializers import CreateRequestSerializer, EventSerializer
from eventstore.services import create_value, delete_value, read_history, read_value, update_value

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT = "text/plain"

# Anything not listed here is an unexpected error
ERROR_STATUS = {
    InvalidBody: status.HTTP_400_BAD_REQUEST,
    KeyExists: status.HTTP_400_BAD_REQUEST,
    KeyDeleted: status.HTTP_400_BAD_REQUEST,
    KeyNotFound: status.HTTP_404_NOT_FOUND,
}

KEY_PARAMETER = OpenApiParameter(
    name="key",
    type=str,
    location=OpenApiParameter.PATH,
    description="The key to operate on",
)


def media_type(request) -> str:
    """Return the request's Content-Type without parameters such as charset."""
    return request.content_type.split(";")[0].strip().lower()


def plain_text_response(message: str, status_code: int) -> HttpResponse:
    return HttpResponse(message, status=status_code, content_type=f"{CONTENT_TYPE_TEXT}; charset=utf-8")


class EventStoreAPIView(APIView):
    """Base view answering in plain text and translating store errors."""

    renderer_classes = [PlainTextRenderer]
    content_negotiation_class = IgnoreClientContentNegotiation

    def error_response(self, exc: EventStoreError, status_code: Optional[int] = None) -> HttpResponse:
        if status_code is None:
            status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        message = str(exc)
        if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(f"Unexpected error handling {self.request.method} {self.request.path}: {exc!r}")
            message = f"{ERROR_UNEXPECTED} {exc}"
        return plain_text_response(message, status_code)

    def handle_exception(self, exc):
        # DRF errors (405, ...) are answered in plain text whatever the view renders
        response = super().handle_exception(exc)
        if isinstance(response, Response):
            return plain_text_response(response.data or "", response.status_code)
        return response


class KeyCreateView(EventStoreAPIView):
    """Create a key from a single-pair JSON object."""

    http_method_names = ["post"]
    parser_classes = [JSONParser]

    @extend_schema(
        operation_id="create_key",
        summary="Create a key",
        description=(
            'Create a key from a JSON object of the form {"key":"value"}. A key that was deleted '
            "can be created again; its history is kept."
        ),
        request={CONTENT_TYPE_JSON: OpenApiTypes.OBJECT},
        responses={
            201: OpenApiResponse(description="Key created"),
            400: OpenApiResponse(description="Invalid body, or the key already exists"),
            415: OpenApiResponse(description="Content-Type is not application/json"),
        },
        tags=["Key-Value Operations"],
    )
    def post(self, request):
        if media_type(request) != CONTENT_TYPE_JSON:
            return self.error_response(
                InvalidBody(ERROR_INVALID_POST_BODY), status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
            )

        try:
            data = request.data
        except ParseError:
            return self.error_response(InvalidBody(ERROR_INVALID_POST_BODY))

        serializer = CreateRequestSerializer(data=data)
        if not serializer.is_valid():
            return self.error_response(InvalidBody(ERROR_INVALID_POST_BODY))

        try:
            create_value(serializer.validated_data["key"], serializer.validated_data["value"])
        except EventStoreError as e:
            return self.error_response(e)
        return Response(status=status.HTTP_201_CREATED)


class KeyValueView(EventStoreAPIView):
    """Read, update and delete the current value of a key."""

    http_method_names = ["get", "put", "patch", "delete"]
    parser_classes = [PlainTextParser]

    @extend_schema(
        operation_id="read_key",
        summary="Read the current value of a key",
        parameters=[KEY_PARAMETER],
        responses={
            (200, CONTENT_TYPE_TEXT): OpenApiResponse(response=OpenApiTypes.STR, description="The current value"),
            204: OpenApiResponse(description="The key has been deleted"),
            404: OpenApiResponse(description="The key was never created"),
        },
        tags=["Key-Value Operations"],
    )
    def get(self, request, key: str):
        try:
            value = read_value(key)
        except EventStoreError as e:
            return self.error_response(e)

        if value is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(value)

    @extend_schema(
        operation_id="update_key",
        summary="Update the value of a key",
        description="Replace the value of a live key. The request body is the raw new value.",
        parameters=[KEY_PARAMETER],
        request={CONTENT_TYPE_TEXT: OpenApiTypes.STR},
        responses={
            204: OpenApiResponse(description="Value updated"),
            400: OpenApiResponse(description="Empty body, or the key has been deleted"),
            404: OpenApiResponse(description="The key was never created"),
            415: OpenApiResponse(description="Content-Type is not text/plain"),
        },
        tags=["Key-Value Operations"],
    )
    def put(self, request, key: str):
        if media_type(request) != CONTENT_TYPE_TEXT:
            return self.error_response(
                InvalidBody(ERROR_INVALID_PUT_BODY), status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
            )

        try:
            value = request.data
        except ParseError:
            return self.error_response(InvalidBody(ERROR_INVALID_PUT_BODY))

        # An empty body is parsed as an empty dict
        if not isinstance(value, str) or not value:
            return self.error_response(InvalidBody(ERROR_INVALID_PUT_BODY))

        try:
            update_value(key, value)
        except EventStoreError as e:
            return self.error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="patch_key",
        summary="Update the value of a key",
        description="Same as PUT.",
        parameters=[KEY_PARAMETER],
        request={CONTENT_TYPE_TEXT: OpenApiTypes.STR},
        responses={
            204: OpenApiResponse(description="Value updated"),
            400: OpenApiResponse(description="Empty body, or the key has been deleted"),
            404: OpenApiResponse(description="The key was never created"),
            415: OpenApiResponse(description="Content-Type is not text/plain"),
        },
        tags=["Key-Value Operations"],
    )
    def patch(self, request, key: str):
        return self.put(request, key)

    @extend_schema(
        operation_id="delete_key",
        summary="Delete a key",
        description="Mark a live key as deleted. Its history is kept and it can be created again.",
        parameters=[KEY_PARAMETER],
        responses={
            204: OpenApiResponse(description="Key deleted"),
            400: OpenApiResponse(description="The key is already deleted"),
            404: OpenApiResponse(description="The key was never created"),
        },
        tags=["Key-Value Operations"],
    )
    def delete(self, request, key: str):
        try:
            delete_value(key)
        except EventStoreError as e:
            return self.error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class KeyHistoryView(EventStoreAPIView):
    """Return every event recorded for a key."""

    http_method_names = ["get"]
    renderer_classes = [JSONRenderer]

    @extend_schema(
        operation_id="read_key_history",
        summary="Read the history of a key",
        description="Return every create, update and delete event recorded for the key, oldest first.",
        parameters=[KEY_PARAMETER],
        responses={
            200: OpenApiResponse(response=EventSerializer(many=True), description="The key's events"),
            404: OpenApiResponse(description="The key was never created"),
        },
        tags=["Key-Value Operations"],
    )
    def get(self, request, key: str):
        try:
            history = read_history(key)
        except EventStoreError as e:
            return self.error_response(e)
        return Response(EventSerializer(history, many=True).data)
