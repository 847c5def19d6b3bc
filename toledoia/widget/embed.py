"""Embed code generation for the ToledoIA widget.

Produces the HTML snippets site owners paste into their pages: the floating
script embed, the inline embed bound to a container element, and a plain
iframe. The snippets only reference ``/widget.js`` and ``/embed/widget``;
the loader script itself is served by the backend.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlencode

VALID_POSITIONS = ("bottom-right", "bottom-left", "top-right", "top-left")
VALID_MODES = ("floating", "inline")


class EmbedCodeGenerator:
    """Generates embeddable snippets for a ToledoIA widget.

    Attributes:
        _base_url: Origin serving ``widget.js`` and the embed page.
    """

    def __init__(self, base_url: str) -> None:
        """Initialize the generator.

        Args:
            base_url: Origin of the ToledoIA deployment
                (e.g., "https://toledoia.replit.app").
        """
        self._base_url = base_url.rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def script_url(self) -> str:
        return f"{self._base_url}/widget.js"

    def generate_init_options(
        self,
        api_key: str,
        position: str = "bottom-right",
        initial_open: bool = False,
        mode: str = "floating",
        target_element: str | None = None,
    ) -> dict[str, Any]:
        """Build the options object passed to ``ToledoIAWidget.init``.

        Raises:
            ValueError: Missing API key, unknown position or mode, or inline
                mode without a target element.
        """
        if not api_key:
            raise ValueError("api_key is required")
        if position not in VALID_POSITIONS:
            raise ValueError(
                f"Invalid position '{position}'. "
                f"Must be one of: {', '.join(VALID_POSITIONS)}"
            )
        if mode not in VALID_MODES:
            raise ValueError(
                f"Invalid mode '{mode}'. Must be one of: {', '.join(VALID_MODES)}"
            )

        options: dict[str, Any] = {"apiKey": api_key}
        if mode == "inline":
            if not target_element:
                raise ValueError("target_element is required for inline mode")
            options["mode"] = "inline"
            options["targetElement"] = target_element
        else:
            options["position"] = position
            options["initialOpen"] = initial_open
        return options

    def generate_embed_code(
        self,
        api_key: str,
        position: str = "bottom-right",
        initial_open: bool = False,
    ) -> str:
        """Script tag plus the init call for the floating widget."""
        options = self.generate_init_options(api_key, position, initial_open)
        return self._render(options)

    def generate_inline_embed_code(self, api_key: str, target_element: str) -> str:
        """Script tag plus the init call rendering the widget inside an element."""
        options = self.generate_init_options(
            api_key, mode="inline", target_element=target_element
        )
        return self._render(options)

    def get_iframe_url(self, api_key: str) -> str:
        if not api_key:
            raise ValueError("api_key is required")
        return f"{self._base_url}/embed/widget?{urlencode({'key': api_key})}"

    def generate_iframe_embed_code(
        self,
        api_key: str,
        width: int = 350,
        height: int = 500,
    ) -> str:
        """Iframe snippet for pages that cannot run third-party scripts."""
        return (
            "<!-- ToledoIA Widget (iframe) -->\n"
            "<iframe\n"
            f'  src="{self.get_iframe_url(api_key)}"\n'
            f'  width="{width}"\n'
            f'  height="{height}"\n'
            '  style="border: none;"\n'
            '  allow="clipboard-write"\n'
            '  title="ToledoIA Chat"\n'
            "></iframe>"
        )

    def _render(self, options: dict[str, Any]) -> str:
        # "</" would close the inline script element early.
        options_js = json.dumps(options, indent=2).replace("</", "<\\/")
        options_js = options_js.replace("\n", "\n    ")
        return f'''<script src="{self.script_url}"></script>
<script>
  document.addEventListener('DOMContentLoaded', function() {{
    window.ToledoIAWidget.init({options_js});
  }});
</script>'''
