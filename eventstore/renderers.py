from django.conf import settings
from rest_framework.exceptions import ParseError
from rest_framework.negotiation import DefaultContentNegotiation
from rest_framework.parsers import BaseParser
from rest_framework.renderers import BaseRenderer


class PlainTextRenderer(BaseRenderer):
    """Render a string response body as ``text/plain``."""

    media_type = "text/plain"
    format = "txt"
    charset = "utf-8"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b""
        return str(data).encode(self.charset)


class PlainTextParser(BaseParser):
    """Parse a ``text/plain`` request body into a string."""

    media_type = "text/plain"

    def parse(self, stream, media_type=None, parser_context=None):
        parser_context = parser_context or {}
        encoding = parser_context.get("encoding", settings.DEFAULT_CHARSET)
        try:
            return stream.read().decode(encoding)
        except UnicodeDecodeError as exc:
            raise ParseError(f"Plain text parse error - {exc}")


class IgnoreClientContentNegotiation(DefaultContentNegotiation):
    """Always answer with the view's first renderer, whatever the Accept header says."""

    def select_renderer(self, request, renderers, format_suffix=None):
        renderer = renderers[0]
        return (renderer, renderer.media_type)
