"""
games/fields.py

The closed set of game fields a correction may target, keyed by the name
clients send (``releaseDate``) and mapped to the Game attribute
(``release_date``).
"""

FIELD_ATTRIBUTES = {
    "title": "title",
    "description": "description",
    "releaseDate": "release_date",
    "developer": "developer",
    "publisher": "publisher",
    "genres": "genres",
    "platforms": "platforms",
    "activationType": "activation_type",
    "status": "status",
    "imageUrl": "image_url",
    "instructions": "instructions",
    "knownIssues": "known_issues",
    "communityTips": "community_tips",
    "discordLink": "discord_link",
    "redditLink": "reddit_link",
    "wikiLink": "wiki_link",
    "steamDBLink": "steamdb_link",
    "purchaseLink": "purchase_link",
    "gogDreamlistLink": "gog_dreamlist_link",
    "downloadLink": "download_link",
    "additionalDRM": "additional_drm",
    "playabilityStatus": "playability_status",
    "isUnplayable": "is_unplayable",
    "communityAlternativeName": "community_alternative_name",
    "communityAlternativeUrl": "community_alternative_url",
    "communityAlternativeDownloadLink": "community_alternative_download_link",
    "remasteredName": "remastered_name",
    "remasteredPlatform": "remastered_platform",
}

FIELD_CHOICES = [(name, name) for name in FIELD_ATTRIBUTES]

# Never cleared by a correction.
NON_CLEARABLE_FIELDS = {"title", "status", "activationType"}

LIST_FIELDS = {"genres", "platforms", "instructions", "knownIssues", "communityTips"}

BOOLEAN_FIELDS = {"isUnplayable"}

LINK_FIELDS = {
    "imageUrl",
    "discordLink",
    "redditLink",
    "wikiLink",
    "steamDBLink",
    "purchaseLink",
    "gogDreamlistLink",
    "downloadLink",
    "communityAlternativeUrl",
    "communityAlternativeDownloadLink",
}

# Only these may point straight at a file.
DOWNLOAD_FIELDS = {"downloadLink", "communityAlternativeDownloadLink"}

PUBLISH_REQUIRED_FIELDS = ("title", "releaseDate", "developer", "publisher")


def attribute_for(field):
    return FIELD_ATTRIBUTES[field]


def empty_value(field):
    if field in LIST_FIELDS:
        return []
    if field in BOOLEAN_FIELDS:
        return False
    return ""


def is_empty(value):
    return value is None or value == "" or value == []
