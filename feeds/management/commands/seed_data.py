user_fixtures = [
    {"username": "johndoe", "email": "john.doe@example.org", "first_name": "John", "last_name": "Doe"},
    {"username": "janedoe", "email": "jane.doe@example.org", "first_name": "Jane", "last_name": "Doe"},
    {"username": "charlie", "email": "charlie.johnson@example.org", "first_name": "Charlie", "last_name": "Johnson"},
]

hashtag_pool = [
    "music", "travel", "food", "photography", "art", "gaming",
    "fitness", "coding", "nature", "film", "books", "design",
]

# Saved feeds given to every fixture user.
feed_fixtures = [
    {
        "name": "Photos this month",
        "description": "Images and galleries from the last 30 days",
        "blocks": [
            {"type": "filter-type", "types": ["image", "gallery"], "mode": "include"},
            {"type": "sort-popular", "metric": "likes", "direction": "desc", "timeWindow": "30d"},
        ],
    },
    {
        "name": "Shuffle",
        "description": "Everything, in a random order",
        "blocks": [{"type": "sort-random"}],
    },
    {
        "name": "Music and film",
        "description": "",
        "blocks": [
            {"type": "filter-hashtag", "tags": ["music", "film"], "mode": "include", "matchAll": False},
            {"type": "sort-recent", "direction": "desc"},
            {"type": "limit", "count": 50},
        ],
    },
]
