TITLE = "feedstr"

SUMMARY = "RSS and Atom feeds republished as Nostr events"

TAGS_METADATA = [
    {
        "name": "feeds",
        "description": "Feed registration, listing and removal. **NIP-05** lookup is here.",
    },
    {
        "name": "jobs",
        "description": "Background feed registration. Submit a URL, then poll the job.",
    },
    {
        "name": "health",
        "description": "Liveness and scheduler state.",
    },
]
