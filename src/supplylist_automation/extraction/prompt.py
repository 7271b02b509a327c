NOT_A_SUPPLY_LIST_ERROR = "This does not appear to be a school supply list."

SYSTEM_PROMPT = (
    "You are a strict JSON generator. Output ONLY a single JSON object that matches the requested shape. "
    "No prose, no trailing text."
)


def build_instruction() -> str:
    return f"""
Please analyze this school supply list image and extract the following information:
school name, school year, teacher name, and all supply items.

If there are multiple grade lists, identify each grade and its associated items separately.

Format your response as a JSON object with the following structure:
{{
  "schoolName": string or null,
  "year": string or null,
  "teacherName": string or null,
  "gradeLists": [
    {{
      "grade": string or null,
      "supplyItems": [
        {{ "name": string, "quantity": number, "originalText": string }}
      ]
    }}
  ]
}}

Rules:
- "originalText" is the line exactly as printed on the list.
- "quantity" is the number of units requested; use 1 when no number is printed.
- Keep items in the order they appear.

If this is not a school supply list image, respond with:
{{ "error": "{NOT_A_SUPPLY_LIST_ERROR}" }}
""".strip()
