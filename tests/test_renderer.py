"""Tests for key face rendering."""

import base64
import io

from PIL import Image

from habitdeck.dashboard.renderer import KeyRenderer


class TestKeyRenderer:
    def test_renders_square_png(self):
        png = KeyRenderer(size=96).render_key(True)

        image = Image.open(io.BytesIO(png))
        assert image.format == "PNG"
        assert image.size == (96, 96)

    def test_done_and_empty_differ(self):
        renderer = KeyRenderer()
        assert renderer.render_key(True) != renderer.render_key(False)

    def test_check_mark_only_on_done(self):
        renderer = KeyRenderer(size=72)
        done = Image.open(io.BytesIO(renderer.render_key(True))).convert("L")
        empty = Image.open(io.BytesIO(renderer.render_key(False))).convert("L")

        # Centre of the box: white stroke of the check vs black background.
        centre = (36, 36)
        assert empty.getpixel(centre) == 0
        assert sum(done.getpixel((x, y)) for x in range(28, 44) for y in range(28, 44)) > 0

    def test_faces_are_cached(self):
        renderer = KeyRenderer()
        assert renderer.render_key(False) is renderer.render_key(False)

    def test_base64(self):
        renderer = KeyRenderer()
        assert base64.b64decode(renderer.render_key_base64(True)) == renderer.render_key(True)
