"""Prompt builders for view synthesis and product page import."""

VIEW_NAMES = {
    "front": "front view",
    "back": "back view",
    "left": "left side view",
}


def view_label(view_name: str) -> str:
    """Return the display label for a view name ("back view" -> "Back view")."""
    return view_name[:1].upper() + view_name[1:]


def build_view_prompt(view_name: str) -> str:
    """Return the instruction used to synthesize one studio view of the product."""
    return (
        "Using the attached image(s) as a reference, generate a single, high-resolution, "
        f"photorealistic image of the object's **{view_name}**. "
        "The object must be centered on a clean, plain white background, as though it was "
        "photographed in a whitespace studio with professional lighting. "
        "Ensure the lighting is neutral and clearly shows the object's details. "
        "The final image must be a 1:1 square aspect ratio. "
        "Do not include any text, labels, or watermarks."
    )


def build_find_image_prompt(product_url: str) -> str:
    """Return the prompt asking the model to locate the main product image on a page."""
    return (
        f"Analyze the content of the product page at {product_url} and return the URL of the main, "
        "high-resolution product image. The image should be on a clean background if possible. "
        "Return the image URL."
    )


def build_extract_url_prompt(text: str) -> str:
    """Return the prompt that pulls a bare image URL out of free text."""
    return f'From the following text, extract the image URL: "{text}"'
