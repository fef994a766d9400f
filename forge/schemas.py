"""Response-shape descriptors sent with each text request.

These follow the upstream `responseSchema` format (OpenAPI subset with
upper-case type names). The provider is asked to honour them, but nothing
relies on that: every response is still extracted and shape-checked by
forge.content.
"""

from typing import Any

_STRING = {"type": "STRING"}
_BOOLEAN = {"type": "BOOLEAN"}

OUTLINE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": _STRING,
        "overallGoal": _STRING,
        "stages": {
            "type": "ARRAY",
            "description": "Exactly 3 main stages or acts.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": _STRING,
                    "description": _STRING,
                    "objective": _STRING,
                },
                "required": ["title", "description", "objective"],
            },
        },
    },
    "required": ["title", "overallGoal", "stages"],
}

_STRING_LIST = {"type": "ARRAY", "items": _STRING}

WORLD_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "worldName": _STRING,
        "genreClarification": _STRING,
        "keyEnvironmentalFeatures": _STRING_LIST,
        "dominantSocietiesOrFactions": _STRING_LIST,
        "uniqueCreaturesOrMonsters": _STRING_LIST,
        "magicSystemOverview": _STRING,
        "briefHistoryHook": _STRING,
        "culturalNormsOrTaboos": _STRING_LIST,
    },
    "required": [
        "worldName",
        "genreClarification",
        "keyEnvironmentalFeatures",
        "dominantSocietiesOrFactions",
        "uniqueCreaturesOrMonsters",
        "magicSystemOverview",
        "briefHistoryHook",
        "culturalNormsOrTaboos",
    ],
}

STORY_SEGMENT_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "sceneDescription": _STRING,
        "choices": {
            "type": "ARRAY",
            "description": "Empty if isUserInputCommandOnly is true.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": _STRING,
                    "outcomePrompt": _STRING,
                    "signalsStageCompletion": _BOOLEAN,
                    "leadsToFailure": _BOOLEAN,
                },
                "required": ["text", "outcomePrompt", "signalsStageCompletion", "leadsToFailure"],
            },
        },
        "imagePrompt": _STRING,
        "isFinalScene": _BOOLEAN,
        "isFailureScene": _BOOLEAN,
        "isUserInputCommandOnly": _BOOLEAN,
        "itemFound": {
            "type": "OBJECT",
            "nullable": True,
            "properties": {"name": _STRING, "description": _STRING},
            "required": ["name", "description"],
        },
    },
    "required": [
        "sceneDescription",
        "choices",
        "imagePrompt",
        "isFinalScene",
        "isFailureScene",
        "isUserInputCommandOnly",
    ],
}

EXAMINATION_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {"examinationText": _STRING},
    "required": ["examinationText"],
}

FEASIBILITY_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "isPossible": _BOOLEAN,
        "reason": _STRING,
        "suggestedOutcomeSummaryIfPossible": {"type": "STRING", "nullable": True},
    },
    "required": ["isPossible", "reason"],
}
