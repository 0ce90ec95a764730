"""Unit tests for devcontainer.json parsing."""

from __future__ import annotations

import pytest

from playground.errors import InvalidConfigurationError
from playground.models.repository import Port
from playground.utils.devcontainer import parse_devcontainer, strip_jsonc


class TestStripJsonc:
    def test_line_and_block_comments(self):
        text = """{
            // the image
            "image": "ubuntu", /* inline */ "forwardPorts": [1]
        }"""

        assert strip_jsonc(text).split() == ["{", '"image":', '"ubuntu",', '"forwardPorts":', "[1]", "}"]

    def test_comment_markers_inside_strings_are_kept(self):
        text = '{"url": "http://example.com/*path*/"} // trailing'

        assert strip_jsonc(text).strip() == '{"url": "http://example.com/*path*/"}'

    def test_trailing_commas(self):
        assert strip_jsonc('{"a": [1, 2, ], }') == '{"a": [1, 2 ] }'

    def test_commas_inside_strings_are_kept(self):
        assert strip_jsonc('{"a": ",}"}') == '{"a": ",}"}'

    def test_escaped_quote(self):
        text = '{"a": "say \\"hi\\" // not a comment"}'

        assert strip_jsonc(text) == text


class TestParseDevcontainer:
    def test_full_document(self):
        runtime = parse_devcontainer(
            """{
                "image": "mcr.microsoft.com/devcontainers/python:3.12",
                "containerEnv": {"DEBUG": "1"},
                "forwardPorts": [8080, 9000],
                "postCreateCommand": "pip install -e .",
            }"""
        )

        assert runtime.image == "mcr.microsoft.com/devcontainers/python:3.12"
        assert runtime.env == {"DEBUG": "1"}
        assert runtime.ports == [
            Port(name="port-8080", port=8080, protocol="TCP"),
            Port(name="port-9000", port=9000, protocol="TCP"),
        ]

    def test_minimal_document(self):
        runtime = parse_devcontainer('{"image": "ubuntu"}')

        assert runtime.env == {}
        assert runtime.ports == []

    def test_lifecycle_commands_in_any_form_are_ignored(self):
        runtime = parse_devcontainer(
            """{
                "image": "node:20",
                "onCreateCommand": ["npm", "ci"],
                "postCreateCommand": {"deps": "npm install", "db": ["make", "db"]},
                "postStartCommand": "npm start",
            }"""
        )

        assert runtime.image == "node:20"
        assert runtime.env == {}
        assert runtime.ports == []

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "{not json",
            "[]",
            '"image"',
            '{"name": "no image"}',
            '{"image": "ubuntu", "forwardPorts": ["web"]}',
        ],
    )
    def test_invalid_documents(self, text):
        with pytest.raises(InvalidConfigurationError):
            parse_devcontainer(text)
