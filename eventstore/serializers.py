from collections.abc import Mapping

from rest_framework import serializers

from eventstore.events import Document, Event, EventKind
from eventstore.exceptions import ERROR_INVALID_POST_BODY


class StringField(serializers.CharField):
    """CharField that refuses numbers and other non-string input instead of coercing it."""

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail("invalid")
        return super().to_internal_value(data)


class KeyRecordSerializer(serializers.ListSerializer):
    """Serializer for the ordered event history of one key."""

    def validate(self, attrs):
        if attrs[0].kind != EventKind.CREATE:
            raise serializers.ValidationError("The first event of a key must be a create")
        return attrs


class EventSerializer(serializers.Serializer):
    """Serializer for a single history event as stored on disk and returned by the API."""

    event = serializers.ChoiceField(
        choices=[kind.value for kind in EventKind],
        help_text="The kind of change: create, update or delete",
    )
    value = StringField(
        required=False,
        allow_blank=True,
        allow_null=True,
        trim_whitespace=False,
        help_text="The value written by the event. Empty for delete events.",
    )

    class Meta:
        list_serializer_class = KeyRecordSerializer

    def validate(self, attrs):
        kind = EventKind(attrs["event"])
        value = attrs.get("value") or None
        if kind == EventKind.DELETE and value is not None:
            raise serializers.ValidationError("Delete events cannot carry a value")
        return Event(kind, value)

    def to_representation(self, instance):
        return instance.to_dict()


class CreateRequestSerializer(serializers.Serializer):
    """Serializer for create requests of the form ``{"key": "value"}``.

    The body must hold exactly one pair whose value is a non-empty string.
    """

    def to_internal_value(self, data):
        if not isinstance(data, Mapping) or len(data) != 1:
            raise serializers.ValidationError(ERROR_INVALID_POST_BODY)

        ((key, value),) = data.items()
        if not key or not isinstance(value, str) or not value:
            raise serializers.ValidationError(ERROR_INVALID_POST_BODY)
        return {"key": key, "value": value}


def decode_document(data) -> Document:
    """
    Validate a raw JSON document and decode it into typed key records.

    Raises:
        serializers.ValidationError: If any record or event has the wrong shape
    """
    field = serializers.DictField(child=EventSerializer(many=True, allow_empty=False))
    return field.run_validation(data)


def encode_document(document: Document) -> dict:
    return {key: EventSerializer(record, many=True).data for key, record in document.items()}
