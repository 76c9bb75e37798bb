# prompts.py
import random
import re

INDUSTRIES = [
    "Agriculture",
    "Arts/Entertainment",
    "Consulting",
    "Construction/Real Estate",
    "Design/Creative",
    "Education",
    "Energy",
    "Entertainment/Media",
    "Fashion/Beauty",
    "Finance/Banking",
    "Food/Restaurant",
    "Healthcare/Medical",
    "Legal",
    "Manufacturing/Industrial",
    "Marketing/Advertising",
    "Non-profit/Charity",
    "Professional Services",
    "Retail/Shopping",
    "Security",
    "Sports/Fitness",
    "Technology",
    "Telecommunications",
    "Transportation/Logistics",
    "Travel/Hospitality",
]

DEFAULT_INDUSTRY = "Professional Services"

CLASSIFIER_SYSTEM_PROMPT = (
    "You are a business industry classifier. You must return ONLY the exact industry name "
    "from the provided list, nothing else. No explanations, no additional text."
)

INDUSTRY_CLASSIFICATION_PROMPT = """Classify this company into the most appropriate industry category:

Company Name: "{name}"
Description: "{description}"
Slogan: "{slogan}"

Available Industries:
{industries}

Instructions:
- Consider the company name, description, and slogan
- Return ONLY the industry name exactly as listed above
- Choose the single most appropriate category
- If uncertain between two categories, pick the more specific one

Industry:"""

# keyword fallback when the model is unavailable or answers off-list
INDUSTRY_KEYWORDS = {
    "Technology": ["tech", "technology", "software", "digital", "app", "system", "platform"],
    "Healthcare/Medical": ["health", "healthcare", "medical", "care", "clinic", "wellness"],
    "Food/Restaurant": ["restaurant", "food", "coffee", "culinary", "kitchen"],
    "Construction/Real Estate": ["construction", "building", "realty", "architecture"],
    "Finance/Banking": ["bank", "banking", "financial", "finance", "payment", "investment"],
    "Education": ["education", "learning", "school", "training"],
    "Design/Creative": ["design", "creative", "studio", "interior"],
    "Telecommunications": ["communication", "telecom", "network"],
}

INDUSTRY_STYLES = {
    "Technology": ["Modern", "Contemporary", "Minimalist", "Hi-Tech"],
    "Healthcare/Medical": ["Professional", "Modern", "Elegant"],
    "Food/Restaurant": ["Modern", "Contemporary", "Vintage", "Hand-Drawn"],
    "Finance/Banking": ["Professional", "Elegant", "Classical"],
    "Construction/Real Estate": ["Professional", "Bold", "Modern"],
    "Education": ["Playful", "Modern", "Professional"],
    "Energy": ["Modern", "Hi-Tech", "Bold"],
    "Marketing/Advertising": ["Creative", "Bold", "Modern"],
    "Retail/Shopping": ["Elegant", "Playful", "Modern"],
    "Legal": ["Professional", "Elegant", "Classical"],
    "Design/Creative": ["Creative", "Modern", "Abstract"],
    "Telecommunications": ["Modern", "Hi-Tech", "Minimalist"],
    "Entertainment/Media": ["Creative", "Bold", "Modern"],
    "Transportation/Logistics": ["Professional", "Bold", "Modern"],
    "Security": ["Professional", "Bold", "Modern"],
    "Consulting": ["Professional", "Modern", "Elegant"],
    "Manufacturing/Industrial": ["Professional", "Bold", "Modern"],
    "Agriculture": ["Natural", "Modern", "Hand-Drawn"],
    "Non-profit/Charity": ["Professional", "Elegant", "Modern"],
    "Arts/Entertainment": ["Creative", "Bold", "Abstract"],
    "Sports/Fitness": ["Bold", "Modern", "Dynamic"],
    "Travel/Hospitality": ["Elegant", "Modern", "Playful"],
    "Fashion/Beauty": ["Elegant", "Luxury", "Modern"],
}

LOGO_PROMPT_FOOTER = (
    "The logo should be professional, memorable, and suitable for various applications. "
    "Ensure it's scalable and works well in both color and monochrome."
)

# (parameter key, prompt label) for the optional advanced fields, in prompt order
ADVANCED_FIELDS = [
    ("industry", "Industry"),
    ("typographyStyle", "Typography"),
    ("lineStyle", "Line Style"),
    ("composition", "Composition"),
    ("shapeEmphasis", "Shape Emphasis"),
    ("texture", "Texture"),
    ("complexityLevel", "Complexity"),
    ("applicationContext", "Application"),
    ("specialInstructions", "Special Instructions"),
]


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def build_logo_prompt(params: dict) -> str:
    """Turn the generator form parameters into the image prompt sent to OpenAI.

    ``companyName`` is required; everything else is optional. ``customColors``
    (a list) wins over ``colorScheme`` when the scheme is "Custom Colors".
    """
    company = (params.get("companyName") or "").strip()
    if not company:
        raise ValueError("companyName is required")

    lines = ["Create a logo with the following characteristics:"]
    lines.append(f"Company Name: {company}")
    if params.get("slogan"):
        lines.append(f"Slogan/Subtitle: {params['slogan']}")
    lines.append(f"Style: {params.get('overallStyle') or 'Modern'}")

    custom_colors = [c for c in (params.get("customColors") or []) if c]
    scheme = params.get("colorScheme") or "Designer's Choice"
    if scheme == "Custom Colors" and custom_colors:
        lines.append(f"Colors: Use these specific colors - {', '.join(custom_colors)}")
    else:
        lines.append(f"Colors: {scheme}")

    lines.append(f"Symbol Focus: {params.get('symbolFocus') or 'Abstract Icon'}")
    lines.append(f"Brand Personality: {params.get('brandPersonality') or 'Professional'}")

    if _truthy(params.get("transparentBackground")):
        lines.append("Background: Transparent background (no background color or elements)")
    else:
        lines.append("Background: Include background color or design elements")

    for key, label in ADVANCED_FIELDS:
        value = params.get(key)
        if value:
            lines.append(f"{label}: {value}")

    return "\n".join(lines) + "\n\n" + LOGO_PROMPT_FOOTER


def build_industry_classification_prompt(name: str, description: str = "", slogan: str = "") -> str:
    return INDUSTRY_CLASSIFICATION_PROMPT.format(
        name=name or "",
        description=description or "",
        slogan=slogan or "",
        industries="\n".join(f"- {i}" for i in INDUSTRIES),
    )


def fallback_industry(text: str) -> str:
    # whole words only, plural "s" allowed: "app" must not match "happy"
    words = set(re.findall(r"[a-z0-9]+", (text or "").lower()))
    for industry, keywords in INDUSTRY_KEYWORDS.items():
        if any(k in words or k + "s" in words for k in keywords):
            return industry
    return DEFAULT_INDUSTRY


def normalize_industry(answer: str | None) -> str | None:
    """Map a model answer onto the fixed list (case/whitespace/punctuation tolerant)."""
    if not answer:
        return None
    lines = answer.strip().splitlines()
    if not lines:
        return None
    cleaned = lines[0].strip().strip(".\"'` ")
    for industry in INDUSTRIES:
        if cleaned.lower() == industry.lower():
            return industry
    return None


def suggest_style(industry: str, rng=random) -> str:
    styles = INDUSTRY_STYLES.get(industry) or ["Modern", "Professional"]
    return rng.choice(styles)
