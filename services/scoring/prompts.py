"""Prompt builders for food health scoring."""


def build_scoring_prompt() -> str:
    """Return the fixed instruction sent with every meal photo."""
    return (
        "You are a nutrition expert. Analyze this food image and provide a health score from 1-10 where:\n"
        "- 10: Extremely healthy (fresh fruits, vegetables, lean proteins, whole grains)\n"
        "- 8-9: Very healthy (balanced meals, minimal processing)\n"
        "- 6-7: Moderately healthy (some processed ingredients but nutritious)\n"
        "- 4-5: Neutral/mixed (equal healthy and unhealthy elements)\n"
        "- 2-3: Somewhat unhealthy (high in processed foods, sugar, or fat)\n"
        "- 1: Very unhealthy (junk food, heavily processed, high sugar/fat)\n"
        "\n"
        "Respond with ONLY a JSON object in this exact format:\n"
        '{"score": <number>, "reasoning": "<brief explanation>", "confidence": <1-5>}\n'
        "\n"
        "Be decisive and assign a clear score. If it's not food, assign score 5 with appropriate reasoning."
    )


def build_inputs(prompt: str, image_b64: str, mime_type: str = "image/jpeg"):
    """Build the Responses API input with the prompt and the image as a data URL."""
    return [
        {
            "type": "message",
            "role": "user",
            "content": [
                {"type": "input_text", "text": prompt},
                {"type": "input_image", "image_url": f"data:{mime_type};base64,{image_b64}"},
            ],
        }
    ]
