"""
Markdown renderers used for content unit bodies.

The composer only needs ``render(text) -> html``. Two implementations are
provided: mistune (the default) and Python-Markdown.
"""

import markdown
import mistune

from .errors import BuildError


class MistuneRenderer:
    """Render Markdown with a Mistune parser and a custom HTML renderer."""

    name = 'mistune'

    def __init__(self):
        self.markdown_parser = self.create_markdown_parser()

    def create_markdown_parser(self):
        """Create a Mistune markdown parser with a custom renderer."""
        class CustomRenderer(mistune.HTMLRenderer):
            def __init__(self):
                super().__init__(escape=False)

            def block_code(self, code, info=None):
                escaped_code = mistune.escape(code)
                if info:
                    language = mistune.escape(info.split()[0])
                    return '<pre><code class="language-{}">{}</code></pre>\n'.format(language, escaped_code)
                return '<pre><code>{}</code></pre>\n'.format(escaped_code)

        return mistune.create_markdown(
            renderer=CustomRenderer(),
            plugins=['table', 'task_lists', 'strikethrough']
        )

    def render(self, text: str) -> str:
        """Convert markdown text to HTML."""
        return self.markdown_parser(text)

    __call__ = render


class PythonMarkdownRenderer:
    """Render Markdown with Python-Markdown and its common extensions."""

    name = 'python-markdown'

    EXTENSIONS = ['extra', 'sane_lists', 'smarty']

    def __init__(self, extensions=None):
        self.extensions = list(extensions or self.EXTENSIONS)

    def render(self, text: str) -> str:
        # Markdown instances hold per-document state.
        return markdown.Markdown(extensions=self.extensions, output_format='html').convert(text)

    __call__ = render


RENDERERS = {
    MistuneRenderer.name: MistuneRenderer,
    PythonMarkdownRenderer.name: PythonMarkdownRenderer,
}


def get_renderer(name: str = 'mistune'):
    """Return a renderer instance by its setting name."""
    try:
        return RENDERERS[name or 'mistune']()
    except KeyError:
        raise BuildError(
            f"Unknown markdown renderer {name!r}; choose one of {', '.join(sorted(RENDERERS))}")
