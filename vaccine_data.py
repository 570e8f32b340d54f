VACCINE_CATEGORIES = ("mRNA", "Viral Vector", "Inactivated Virus")

# Known products: name -> manufacturer, category, doses required, efficacy %
VACCINE_PRODUCTS = {
    "Pfizer-BioNTech": {"manufacturer": "Pfizer Inc.", "type": "mRNA", "dosesRequired": 2, "efficacy": 95},
    "Moderna": {"manufacturer": "Moderna Inc.", "type": "mRNA", "dosesRequired": 2, "efficacy": 94},
    "Johnson & Johnson": {"manufacturer": "Janssen Pharmaceuticals", "type": "Viral Vector", "dosesRequired": 1, "efficacy": 66},
    "AstraZeneca": {"manufacturer": "AstraZeneca plc", "type": "Viral Vector", "dosesRequired": 2, "efficacy": 76},
    "Sinovac": {"manufacturer": "Sinovac Biotech", "type": "Inactivated Virus", "dosesRequired": 2, "efficacy": 51},
    "Sputnik V": {"manufacturer": "Gamaleya Research Institute", "type": "Viral Vector", "dosesRequired": 2, "efficacy": 92},
}

# (label, lowest age, highest age); None means open-ended
AGE_GROUPS = [
    ("0-17", 0, 17),
    ("18-29", 18, 29),
    ("30-44", 30, 44),
    ("45-64", 45, 64),
    ("65+", 65, None),
]


def age_group_for(age: int) -> str:
    """Return the age bucket label an age falls into."""
    for label, low, high in AGE_GROUPS:
        if age >= low and (high is None or age <= high):
            return label
    raise ValueError(f"Age must be non-negative, got {age}")
