from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates"


class Renderer:
    """Async Jinja2 renderer for email templates."""

    _env: Environment | None = None

    @classmethod
    def initialize(cls, template_dir: str | Path = TEMPLATE_DIR) -> None:
        """
        Create the template environment.

        Autoescaping is on; undefined variables raise instead of rendering empty.

        Args:
            template_dir: Directory holding the templates.
        """
        cls._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=True,
            enable_async=True,
            undefined=StrictUndefined,
        )

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._env is not None

    @classmethod
    async def render_template(cls, template_name: str, context: dict | None = None) -> str:
        """
        Render a template with the given context.

        Raises:
            TemplateNotFound: If the template does not exist.
            TemplateError: If rendering fails.
            RuntimeError: If the renderer has not been initialized.
        """
        if cls._env is None:
            raise RuntimeError("Renderer not initialized. Call initialize() first.")
        template = cls._env.get_template(template_name)
        return await template.render_async(**(context or {}))


__all__ = ["Renderer", "TEMPLATE_DIR"]
