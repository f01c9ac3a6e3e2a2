"""Test configuration and fixtures for Quire tests."""

import pytest
import tempfile
import shutil
import logging
from pathlib import Path

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)

@pytest.fixture(autouse=True)
def reset_file_logging():
    """Drop file handlers a test attached to the shared Quire logger."""
    yield
    logger = logging.getLogger('Quire')
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

@pytest.fixture
def write_file():
    """Return a helper that writes text to root/relative, creating parents."""
    def write(root, relative, text):
        path = Path(root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')
        return str(path)
    return write

@pytest.fixture
def site_dir(temp_dir, write_file):
    """Create a small site: pages, a posts collection, nested layouts, a fragment and data."""
    root = Path(temp_dir) / 'site'
    root.mkdir()

    write_file(root, 'quire.yml', """url: https://example.com/
title: Example Site
description: A site used by the tests
default_layout: default
permalink: /:path/
collections:
  posts:
    source: _posts
    permalink: /blog/:year/:month/:slug/
    layout: post
feed:
  collection: posts
  path: /feed.xml
stylesheets:
  /css/site.css:
    - assets/css/reset.css
    - assets/css/main.css
""")

    # Layouts: post nests inside default
    write_file(root, '_layouts/default.html',
               "<html><head><title>{{ page.title }} | {{ site.title }}</title></head>"
               "<body>{{ fragment('nav.html') }}<main>{{ content }}</main></body></html>\n")
    write_file(root, '_layouts/post.html', """---
parent: default
---
<article><h1>{{ title }}</h1>{{ content }}</article>
""")

    write_file(root, '_includes/nav.html',
               '<nav>{% for item in navigation %}<a href="{{ item.target }}"'
               '{% if item.current %} class="current"{% endif %}>{{ item.label }}</a>'
               '{% endfor %}</nav>')

    write_file(root, '_data/navigation.yml', """- label: Home
  target: /
- label: Blog
  target: /blog/
- label: About
  target: /about/
""")

    # Pages
    write_file(root, 'index.md', """---
title: Home
---
Welcome home.
""")
    write_file(root, 'about.md', """---
title: About
redirect_from: /about-us/
---
About {{ site.title }}.
""")
    write_file(root, 'blog/index.md', """---
title: Blog
---
{% for post in collections.posts %}
- [{{ post.title }}]({{ post.url }})
{% endfor %}
""")

    # Posts
    write_file(root, '_posts/2024-01-05-hello.md', """---
title: Hello World
---
Welcome to {{ site.title }}.
""")
    write_file(root, '_posts/2024-02-10-second.md', """---
title: Second Post
date: 2024-02-10
description: The second post
---
More words here.
""")

    # Static assets
    write_file(root, 'assets/css/reset.css', "* { margin: 0; }\n")
    write_file(root, 'assets/css/main.css', "body {\n    color: red;\n}\n")
    write_file(root, 'assets/js/app.js', "// greet\nvar  greeting = 'hi';\n")

    return str(root)

@pytest.fixture
def output_dir(temp_dir):
    """Output directory beside the site (not created yet)."""
    return str(Path(temp_dir) / 'out')
