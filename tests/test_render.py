import pytest

from openapi_docgen.parser.base import HandlerShape
from openapi_docgen.parser.docs import parse_handler_doc
from openapi_docgen.parser.render import render_handler_doc

DOCS = {
    "full": """Get user information by ID

    Retrieves user information for the specified user ID.

    Returns name and email.

    # Parameters
    - id (path): The unique identifier of the user [example: 42]
    - verbose (query): Include audit fields [example: true, default: false]
    - x-trace (header):

    # Request Body
    Content-Type: application/json
    Optional update payload
    - name (string): Full name
    - email (string): Email address

    # Responses
    - 200:
      description: "Success: user returned"
      content:
        application/json:
          schema: UserResponse
        application/xml:
          schema: UserResponse
    - 404: User not found
    """,
    "body_schema": """Update user

    # Request Body
    Content-Type: application/json
    Schema: UpdateUser
    Required: false
    """,
    "summary_only": "Health check",
}

SHAPES = [
    None,
    HandlerShape(success_type="User", error_type="ApiError"),
    HandlerShape(success_type="User", fallible=True, request_type="NewUser"),
]


class TestRenderIdempotency:
    @pytest.mark.parametrize("name", sorted(DOCS))
    @pytest.mark.parametrize("shape", SHAPES)
    def test_parse_render_parse(self, name, shape):
        first = parse_handler_doc(name, DOCS[name], shape, default_error_schema="ErrorResponse")
        rendered = render_handler_doc(first)
        second = parse_handler_doc(name, rendered, shape, default_error_schema="ErrorResponse")
        assert second == first

    def test_render_is_stable(self):
        descriptor = parse_handler_doc("full", DOCS["full"])
        once = render_handler_doc(descriptor)
        twice = render_handler_doc(parse_handler_doc("full", once))
        assert once == twice


class TestCanonicalForm:
    def test_synthesized_responses_are_not_rendered(self):
        descriptor = parse_handler_doc("h", "Get user", HandlerShape(success_type="User", error_type="ApiError"))
        assert render_handler_doc(descriptor) == "Get user\n"

    def test_sections_in_canonical_order(self):
        rendered = render_handler_doc(parse_handler_doc("full", DOCS["full"]))
        lines = rendered.splitlines()
        assert lines[0] == "Get user information by ID"
        assert lines.index("# Parameters") < lines.index("# Request Body") < lines.index("# Responses")
        assert "- 404: User not found" in lines
        assert "- 200:" in lines

    def test_parameter_metadata_rendered(self):
        rendered = render_handler_doc(parse_handler_doc("full", DOCS["full"]))
        assert "- verbose (query): Include audit fields [example: true, default: false]" in rendered
