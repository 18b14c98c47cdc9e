"""Bootstrap dataset loaded by POST /seed (and SEED_ON_STARTUP).

Records use the API's camelCase shape and are upserted on (firstName, lastName),
so seeding twice leaves one row per advocate.
"""

from typing import Any, Dict, List

_SPECIALTIES = [
    "Bipolar",
    "LGBTQ",
    "Medication/Prescribing",
    "Suicide History/Attempts",
    "General Mental Health (anxiety, depression, stress, grief, life transitions)",
    "Men's issues",
    "Relationship Issues (family, friends, couple, etc)",
    "Trauma & PTSD",
    "Personality disorders",
    "Personal growth",
    "Substance use/abuse",
    "Pediatrics",
    "Women's issues (post-partum, infertility, family planning)",
    "Chronic pain",
    "Weight loss & nutrition",
    "Eating disorders",
    "Diabetic Diet and nutrition",
    "Coaching (leadership, career, academic and wellness)",
    "Life coaching",
    "Obsessive-compulsive disorders",
    "Neuropsychological evaluations & testing (ADHD testing)",
    "Attention and Hyperactivity (ADHD)",
    "Sleep issues",
    "Schizophrenia and psychotic disorders",
    "Learning disorders",
    "Domestic abuse",
]


def _pick(*idx: int) -> List[str]:
    return [_SPECIALTIES[i] for i in idx]


SEED_ADVOCATES: List[Dict[str, Any]] = [
    {"firstName": "John", "lastName": "Doe", "city": "New York", "degree": "MD",
     "specialties": _pick(0, 4, 7), "yearsOfExperience": 10, "phoneNumber": 5551234567},
    {"firstName": "Jane", "lastName": "Smith", "city": "Los Angeles", "degree": "PhD",
     "specialties": _pick(4, 6), "yearsOfExperience": 8, "phoneNumber": 5559876543},
    {"firstName": "Alice", "lastName": "Johnson", "city": "Chicago", "degree": "MSW",
     "specialties": _pick(1, 7, 9), "yearsOfExperience": 5, "phoneNumber": 5554567890},
    {"firstName": "Michael", "lastName": "Brown", "city": "Houston", "degree": "MD",
     "specialties": _pick(2, 10), "yearsOfExperience": 12, "phoneNumber": 5556543210},
    {"firstName": "Emily", "lastName": "Davis", "city": "Phoenix", "degree": "PhD",
     "specialties": _pick(11, 20, 21), "yearsOfExperience": 7, "phoneNumber": 5553210987},
    {"firstName": "Chris", "lastName": "Martinez", "city": "Philadelphia", "degree": "MSW",
     "specialties": _pick(5, 6, 25), "yearsOfExperience": 9, "phoneNumber": 5557890123},
    {"firstName": "Jessica", "lastName": "Taylor", "city": "San Antonio", "degree": "MD",
     "specialties": _pick(12, 13), "yearsOfExperience": 11, "phoneNumber": 5554561234},
    {"firstName": "David", "lastName": "Harris", "city": "San Diego", "degree": "PhD",
     "specialties": _pick(8, 19, 23), "yearsOfExperience": 6, "phoneNumber": 5557896543},
    {"firstName": "Laura", "lastName": "Clark", "city": "Dallas", "degree": "MSW",
     "specialties": _pick(14, 15, 16), "yearsOfExperience": 4, "phoneNumber": 5550123456},
    {"firstName": "Daniel", "lastName": "Lewis", "city": "San Jose", "degree": "MD",
     "specialties": _pick(2, 3, 0), "yearsOfExperience": 13, "phoneNumber": 5553217654},
    {"firstName": "Sarah", "lastName": "Lee", "city": "Austin", "degree": "PhD",
     "specialties": _pick(17, 18, 9), "yearsOfExperience": 10, "phoneNumber": 5551238765},
    {"firstName": "James", "lastName": "King", "city": "Jacksonville", "degree": "MSW",
     "specialties": _pick(10, 25), "yearsOfExperience": 5, "phoneNumber": 5556540987},
    {"firstName": "Megan", "lastName": "Green", "city": "San Francisco", "degree": "MD",
     "specialties": _pick(22, 4), "yearsOfExperience": 14, "phoneNumber": 5553214321},
    {"firstName": "Joshua", "lastName": "Walker", "city": "Columbus", "degree": "PhD",
     "specialties": _pick(20, 24), "yearsOfExperience": 9, "phoneNumber": 5559873456},
    {"firstName": "Amanda", "lastName": "Hall", "city": "Fort Worth", "degree": "MSW",
     "specialties": _pick(7, 25, 6), "yearsOfExperience": 3, "phoneNumber": 5554569876},
]
