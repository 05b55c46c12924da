"""
GTSD — Physical Units
Distinct types for the quantities the science engine passes around, so a
weight cannot be handed to a parameter expecting a height.
"""

from typing import NewType

Kilograms = NewType("Kilograms", float)
Centimeters = NewType("Centimeters", float)
Years = NewType("Years", int)
Calories = NewType("Calories", int)         # kcal/day
Grams = NewType("Grams", int)               # g/day
Milliliters = NewType("Milliliters", int)   # ml/day
KilogramsPerWeek = NewType("KilogramsPerWeek", float)
