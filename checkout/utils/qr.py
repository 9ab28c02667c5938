import segno


def to_qr_png_data_url(text: str) -> str:
    """Рендерит текст в QR код и возвращает PNG data URL"""
    payload = (text or "").strip()
    if not payload:
        raise ValueError("Пустые данные для QR кода")

    qr = segno.make_qr(payload, error="m")
    return qr.png_data_uri(scale=8, border=1)


def png_base64_to_data_url(image_base64: str) -> str:
    """Оборачивает base64 PNG от шлюза в data URL"""
    image = image_base64.strip()
    if image.startswith("data:"):
        return image
    return f"data:image/png;base64,{image}"
