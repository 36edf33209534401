from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

WIDTH, HEIGHT = 800, 400
MARGIN_LEFT, MARGIN_RIGHT, MARGIN_TOP, MARGIN_BOTTOM = 60, 30, 50, 60
BAR_COLOR = (54, 162, 235)
AXIS_COLOR = (80, 80, 80)
GRID_COLOR = (225, 225, 225)
GRID_LINES = 5


def _font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default()


def render_bar_chart(title: str, data: list[tuple[str, int]]) -> bytes:
    """Draw a simple vertical bar chart and return it as PNG bytes."""
    img = Image.new("RGB", (WIDTH, HEIGHT), "white")
    draw = ImageDraw.Draw(img)
    title_font, text_font = _font(20), _font(12)

    draw.text((MARGIN_LEFT, 15), title, fill="black", font=title_font)

    plot_w = WIDTH - MARGIN_LEFT - MARGIN_RIGHT
    plot_h = HEIGHT - MARGIN_TOP - MARGIN_BOTTOM
    x0, y0 = MARGIN_LEFT, HEIGHT - MARGIN_BOTTOM

    max_value = max((v for _, v in data), default=0)
    scale_max = max(max_value, 1)

    for i in range(GRID_LINES + 1):
        y = y0 - plot_h * i / GRID_LINES
        draw.line([(x0, y), (x0 + plot_w, y)], fill=GRID_COLOR)
        label = f"{scale_max * i / GRID_LINES:.0f}"
        draw.text((x0 - 40, y - 7), label, fill=AXIS_COLOR, font=text_font)

    draw.line([(x0, y0), (x0 + plot_w, y0)], fill=AXIS_COLOR, width=2)
    draw.line([(x0, y0), (x0, y0 - plot_h)], fill=AXIS_COLOR, width=2)

    if data:
        slot = plot_w / len(data)
        bar_w = slot * 0.6
        for i, (label, value) in enumerate(data):
            left = x0 + i * slot + (slot - bar_w) / 2
            top = y0 - plot_h * value / scale_max
            if value:
                draw.rectangle([left, top, left + bar_w, y0], fill=BAR_COLOR)
            draw.text((left, top - 16), str(value), fill="black", font=text_font)
            draw.text((left, y0 + 8), label, fill="black", font=text_font)

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
