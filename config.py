# Configuration settings for the block group subindex dashboard

# Remote data host (public S3 bucket, one file per city/metric/year)
BASE_URL = "https://vip-censusdata.s3.us-east-2.amazonaws.com"
REQUEST_TIMEOUT = 30  # seconds

# Tracked subindices, in fetch order. The first one supplies feature order/geometry.
METRICS = ("IDI", "LDI", "PDI", "CDI")

# Years with published layers, newest first
YEARS = ("2022", "2013")
DEFAULT_YEAR = YEARS[0]
DEFAULT_YEAR_BEFORE = "2013"
DEFAULT_YEAR_AFTER = "2022"

CITIES = {
    "atlanta": "Atlanta",
    "new_york": "New York",
    "los_angeles": "Los Angeles",
}
# Only Atlanta has published layers so far
ACTIVE_CITIES = ("atlanta",)
DEFAULT_CITY = "atlanta"

# Map settings
CITY_COORDINATES = {
    "atlanta": (33.749, -84.388),
    "new_york": (40.7128, -74.006),
    "los_angeles": (34.0522, -118.2437),
}
DEFAULT_COORDINATES = CITY_COORDINATES["atlanta"]
DEFAULT_ZOOM = 12
MAP_HEIGHT = 700

# Weight sliders
DEFAULT_WEIGHTS = {metric: 25 for metric in METRICS}
WEIGHT_MIN = 0
WEIGHT_MAX = 100
WEIGHT_STEP = 1

# Composite score color steps: (exclusive lower bound, color), checked top-down
COMPOSITE_COLOR_STEPS = [
    (0.95, "#006400"),  # dark green
    (0.9, "#228B22"),  # forest green
    (0.85, "#32CD32"),  # lime green
    (0.8, "#7FFF00"),  # chartreuse
    (0.7, "#ADFF2F"),  # green-yellow
    (0.6, "#FFFF66"),  # light yellow
    (0.5, "#FFFF00"),  # bright yellow
    (0.4, "#FFD700"),  # gold
    (0.3, "#FFA500"),  # orange
    (0.2, "#FF4500"),  # orange-red
    (0.1, "#B22222"),  # firebrick
]
COMPOSITE_FLOOR_COLOR = "#8B0000"  # dark red

# Percent change color steps; an exact zero gets NO_CHANGE_COLOR
DIFF_GAIN_STEPS = [
    (50, "#006d2c"),
    (20, "#31a354"),
    (0, "#74c476"),
]
NO_CHANGE_COLOR = "#ffffcc"
DIFF_LOSS_STEPS = [
    (-20, "#fc9272"),
    (-50, "#de2d26"),
]
DIFF_FLOOR_COLOR = "#a50f15"

# Feature outline styles
BASE_STYLE = {
    "weight": 2,
    "opacity": 1,
    "color": "white",
    "dashArray": "3",
    "fillOpacity": 0.7,
}
HIGHLIGHT_STYLE = {
    "weight": 5,
    "color": "#666",
    "dashArray": "",
    "fillOpacity": 0.7,
}

# Page titles
MAIN_TITLE = "VIP-SMUR-PEI Subindex Visualizer"
COMPARE_TITLE = "City Comparison Tool"
NO_DATA_MESSAGE = "No data available for this selection."
