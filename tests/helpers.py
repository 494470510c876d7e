import io

from PIL import Image


def make_png(width=32, height=24, color=(200, 40, 40)):
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


def make_candidate(thumb_url, **extra):
    candidate = {
        "title": extra.pop("title", f"photo {thumb_url}"),
        "author": extra.pop("author", "erdao"),
        "thumb_url": thumb_url,
        "photo_url": extra.pop("photo_url", f"{thumb_url}/original.jpg"),
        "latitude": extra.pop("latitude", 35.6812),
        "longitude": extra.pop("longitude", 139.7671),
    }
    candidate.update(extra)
    return candidate
