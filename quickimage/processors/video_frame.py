import io

from PIL import Image, ImageOps

# Image-to-video only accepts a few fixed frame sizes
FRAME_WIDTH = 1024
FRAME_HEIGHT = 576


def prepare_video_frame(image_data: bytes, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT) -> bytes:
    """
    Scales the image to `width`, keeping its aspect ratio, then crops the
    top-left `width`x`height` region. Short images are padded with black.
    """
    with Image.open(io.BytesIO(image_data)) as img:
        img = ImageOps.exif_transpose(img).convert("RGB")
        scaled_height = max(1, round(img.height * width / img.width))
        resized = img.resize((width, scaled_height), Image.LANCZOS)

    frame = resized.crop((0, 0, width, height))

    buffer = io.BytesIO()
    frame.save(buffer, "PNG")
    return buffer.getvalue()
