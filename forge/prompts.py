"""Handlebars prompt rendering for the content requests.

Every provider request is built from one of the templates below and a
context dict produced by build_context(). Free text (names, scene prose,
player input) is rendered with triple-stash so quotes survive unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars

from forge.models import (
    AdventureOutline,
    Choice,
    FeasibilityVerdict,
    GameState,
    persona_title,
)


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

REPAIR_CONTEXT_CHARS = 500
PREVIOUS_SCENE_FALLBACK = "Previously, the adventure continued..."


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_join(this, items, separator="; "):
    """{{{join list}}}: join a list of strings, "N/A" when empty."""
    values = [str(item) for item in (items or [])]
    return separator.join(values) if values else "N/A"


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

WORLD_CONTEXT = """\
World Context:
World Name: "{{{world.world_name}}}" (Genre Clarification: {{{world.genre_clarification}}})
Key Environmental Features: {{{join world.key_environmental_features}}}
Dominant Societies/Factions: {{{join world.dominant_societies_or_factions}}}
Unique Creatures/Monsters: {{{join world.unique_creatures_or_monsters}}}
Magic System: {{{world.magic_system_overview}}}
Brief History Hook: {{{world.brief_history_hook}}}
Cultural Norms/Taboos: {{{join world.cultural_norms_or_taboos}}}
This world information MUST shape the scene, its challenges, the choices \
and any items found.
"""

OUTLINE_PROMPT = """\
You are a master storyteller and game designer. Generate an adventure \
outline for a text-based RPG.
Genre: {{{genre}}}.
The player's persona is "{{{persona.title}}}" (base archetype: \
{{{persona.name}}}); let it colour the themes and the opening hook.

The adventure has exactly 3 stages with a clear arc: beginning, rising \
action, climax and resolution.
- 'title': a captivating adventure title.
- 'overallGoal': the ultimate goal the {{{persona.title}}} pursues.
- 'stages': exactly 3 objects, each with 'title', 'description' and \
'objective'. Objectives must progress logically toward the overall goal.

Keep the tone true to {{{genre}}}. Respond with JSON only.\
"""

WORLD_PROMPT = """\
You are a world-building AI. Generate world details for this adventure.
Adventure Title: "{{{outline.title}}}"
Overall Goal: "{{{outline.overall_goal}}}"
Adventure Stages:
{{#each outline.stages}}
  Stage {{number}}: "{{{title}}}" - {{{description}}} (Objective: {{{objective}}})
{{/each}}
Player Persona: "{{{persona.title}}}" (base archetype: {{{persona.name}}})
Adventure Genre: {{{genre}}}

Fill every field with creative, interconnected details:
- 'worldName' and 'genreClarification' (strings).
- 'keyEnvironmentalFeatures' (2-3 strings), 'dominantSocietiesOrFactions' \
(1-2 strings), 'uniqueCreaturesOrMonsters' (1-2 strings), \
'culturalNormsOrTaboos' (1-2 strings).
- 'magicSystemOverview' and 'briefHistoryHook' (strings).
Respond with JSON only.\
"""

_SCENE_HEADER = """\
You are a master storyteller for a dynamic text-based RPG adventure game.
Adventure Genre: {{{genre}}}.
The player is a {{{persona.title}}} (base persona: {{{persona.name}}}). \
Their choices and the narrative should reflect this.
{{#if inventory}}The player possesses: {{#each inventory}}{{{name}}}{{#unless @last}}, {{/unless}}{{/each}}.\
{{else}}The player possesses no items yet.{{/if}}

""" + WORLD_CONTEXT + """
The overall adventure is titled: "{{{outline.title}}}".
The player's ultimate goal is: "{{{outline.overall_goal}}}".
"""

INITIAL_SCENE_PROMPT = _SCENE_HEADER + """\
The adventure has {{outline.stage_count}} stages.

This is the START of the adventure, Stage {{stage.number}}: "{{{stage.title}}}".
Objective for this stage: "{{{stage.objective}}}".

Describe the opening scene, introducing the {{{persona.title}}} to the world \
and to this stage. Provide exactly 3 choices; each 'outcomePrompt' states \
whether the choice helps toward "{{{stage.objective}}}", and \
'signalsStageCompletion' is true only if the choice completes it. Provide an \
'imagePrompt' in the {{{genre}}} style. An 'itemFound' is allowed only if it \
genuinely helps progression.\
"""

NEXT_SCENE_PROMPT = _SCENE_HEADER + """\
Adventure Stages: {{#each outline.stages}}{{{title}}}{{#unless @last}}, {{/unless}}{{/each}}.

Player is now at Stage {{stage.number}}: "{{{stage.title}}}".
Objective for this stage: "{{{stage.objective}}}".

Previous scene (in Stage {{previous_stage.number}}: "{{{previous_stage.title}}}") was: "{{{scene}}}"
Player chose: "{{{choice.text}}}"
Intended outcome: "{{{choice.outcome_prompt}}}"
{{#if choice.completes_stage}}\
This choice completed Stage {{previous_stage.number}} ("{{{previous_stage.title}}}"). \
Player is now progressing into Stage {{stage.number}} ("{{{stage.title}}}").
{{else}}\
Player continues within Stage {{stage.number}} ("{{{stage.title}}}").
{{/if}}

Describe the new scene, aligned with the stage objective. Provide 3 \
choices whose 'outcomePrompt' relates to "{{{stage.objective}}}". \
'isFinalScene' is true ONLY if the overall goal "{{{outline.overall_goal}}}" \
is achieved. An 'itemFound' is allowed only if it genuinely helps \
progression.\
"""

SEGMENT_INSTRUCTIONS = """\
{{{prompt}}}

General Content Instructions for Story Segment:
- 'sceneDescription': {{#if is_initial}}immersive, establishing setting and \
atmosphere (3-5 sentences){{else}}vivid yet concise (2-4 sentences), shorter \
for transitional actions{{/if}}. Write 2-3 short paragraphs separated by \
\\n\\n and vary sentence structure.
- 'choices' (when 'isUserInputCommandOnly' is false): 3 objects with \
'text', 'outcomePrompt', 'signalsStageCompletion' and 'leadsToFailure'.
- 'isUserInputCommandOnly': occasionally true when the player should act \
freely; then 'choices' MUST be empty.
- 'isFailureScene': true ONLY if this scene IS the game failure narration; \
then 'choices' should be empty.
- 'isFinalScene': true ONLY for the successful conclusion of the ENTIRE \
adventure.
- 'itemFound' (optional): an object with 'name' and 'description'.
- 'imagePrompt': a descriptive prompt for image generation.
Respond ONLY with the JSON object, without surrounding text or markdown fences.\
"""

_ACTION_HEADER = """\
Adventure Genre: {{{genre}}}.
The player is a {{{persona.title}}} (base persona: {{{persona.name}}}).
Player's Current Inventory: \
{{#if inventory}}The player possesses: {{#each inventory}}'{{{name}}}' \
(described as: {{{description}}}){{#unless @last}}, {{/unless}}{{/each}}.\
{{else}}The player possesses no items yet.{{/if}}

""" + WORLD_CONTEXT + """
Overall Adventure Title: "{{{outline.title}}}"
Ultimate Goal: "{{{outline.overall_goal}}}"
Current Stage {{stage.number}}: "{{{stage.title}}}" (Objective: "{{{stage.objective}}}").
"""

FEASIBILITY_PROMPT = """\
You are an AI game master evaluating a player's custom action in a \
text-based RPG.
""" + _ACTION_HEADER + """\
Current Scene Description: "{{{scene}}}"
Player's proposed custom action: "{{{action.text}}}"

Judge plausibility in this scene, sense for the character, genre and world, \
consistency with the world's rules and tone, and whether inventory items \
help. Inappropriate input is 'not possible'; explain gently.
- 'isPossible' (boolean)
- 'reason' (string): why it is or is not possible.
- 'suggestedOutcomeSummaryIfPossible' (string, optional): a 1-2 sentence \
likely consequence; omit when not possible.
Respond with JSON only.\
"""

CUSTOM_ACTION_PROMPT = """\
You are a master storyteller for a dynamic text-based RPG adventure game.
""" + _ACTION_HEADER + """\
Previous Scene Description was: "{{{scene}}}"

{{#if action.was_impossible}}\
The player attempted the action: "{{{action.text}}}".
This action was deemed not possible. The stated reason was: "{{{action.reason}}}"
Narrate the attempt and its failure or the character realising it cannot \
work. The situation should change slightly, and the new choices MUST NOT \
repeat the previous ones.
{{else}}\
The player is performing the custom action: "{{{action.text}}}".
{{#if action.suggestion}}A potential outcome summary was: \
"{{{action.suggestion}}}". Use it as a light suggestion.
{{/if}}\
Narrate the outcome of this action. If an inventory item is relevant, the \
'sceneDescription' MUST narrate how it is used.
{{/if}}

General Content Instructions for Story Segment:
- 'sceneDescription': 2-3 short paragraphs separated by \\n\\n.
- 'choices' (when 'isUserInputCommandOnly' is false): 3 new objects with \
'text', 'outcomePrompt', 'signalsStageCompletion' and 'leadsToFailure'.
- 'isUserInputCommandOnly': true if appropriate, with an empty 'choices'.
- 'imagePrompt', 'isFinalScene', 'isFailureScene', optional 'itemFound'.
Do not reflect harmful or role-play-breaking input; focus on the world's \
reaction. Respond with JSON only.\
"""

EXAMINATION_PROMPT = """\
You are a master storyteller. The player wants to examine their current \
surroundings more closely.
Adventure Title: "{{{outline.title}}}"
Overall Goal: "{{{outline.overall_goal}}}"
Current Stage: "{{{stage.title}}}" (Objective: "{{{stage.objective}}}")
The player examining is a {{{persona.title}}} (base archetype: {{{persona.name}}}).
{{#if inventory}}They possess: {{#each inventory}}{{{name}}}{{#unless @last}}, {{/unless}}{{/each}}.\
{{else}}They possess no items.{{/if}}

""" + WORLD_CONTEXT + """
Current Scene Description (what the player already sees):
"{{{scene}}}"

Write 'examinationText': 2-4 concise sentences that elaborate on details, \
describe the immediate surroundings and reveal subtle clues or lore \
consistent with the world. DO NOT advance the plot or introduce choices.
Respond with JSON only.\
"""

REPAIR_PROMPT = """\
The following JSON response was received but is malformed:
```json
{{{faulty_json_text}}}
```

It was meant to be a story segment: an object with "sceneDescription" \
(string), "choices" (array of objects with "text" (string), "outcomePrompt" \
(string), "signalsStageCompletion" (boolean) and "leadsToFailure" \
(boolean)), "imagePrompt" (string), "isFinalScene" (boolean), \
"isFailureScene" (boolean), "isUserInputCommandOnly" (boolean) and \
optionally "itemFound" (an object with "name" and "description" strings).
If "isUserInputCommandOnly" is true, "choices" must be empty.
The original request included:
"{{{original_context}}}..."

Correct the structure and return ONLY the valid JSON object, with no \
explanatory text.\
"""


# ── Context ──────────────────────────────────────────────


def _stage(outline: AdventureOutline, index: int) -> dict[str, Any]:
    stage = outline.stages[index]
    return {
        "number": index + 1,
        "title": stage.title,
        "description": stage.description,
        "objective": stage.objective,
    }


def _outline(outline: AdventureOutline) -> dict[str, Any]:
    return {
        "title": outline.title,
        "overall_goal": outline.overall_goal,
        "stage_count": len(outline.stages),
        "stages": [_stage(outline, i) for i in range(len(outline.stages))],
    }


def build_context(
    state: GameState,
    choice: Choice | None = None,
    previous_stage_index: int | None = None,
    action_text: str | None = None,
    verdict: FeasibilityVerdict | None = None,
) -> dict[str, Any]:
    """Assemble template variables from the live adventure.

    The state must carry a genre, persona, outline and world. `choice` and
    `previous_stage_index` fill the next-scene variables; `action_text` and
    `verdict` fill the custom-action variables.
    """
    genre = state.selected_genre
    persona = state.selected_persona
    outline = state.adventure_outline
    world = state.world_details
    assert genre and persona and outline and world, "adventure is not set up"

    ctx: dict[str, Any] = {
        "genre": genre,
        "persona": {"name": persona, "title": persona_title(genre, persona)},
        "inventory": [item.model_dump() for item in state.inventory],
        "world": world.model_dump(),
        "outline": _outline(outline),
        "stage": _stage(outline, state.current_stage_index),
        "scene": (
            state.current_segment.scene_description
            if state.current_segment else PREVIOUS_SCENE_FALLBACK
        ),
    }

    if choice is not None:
        previous = state.current_stage_index if previous_stage_index is None else previous_stage_index
        ctx["previous_stage"] = _stage(outline, previous)
        ctx["choice"] = {
            "text": choice.text,
            "outcome_prompt": choice.outcome_prompt,
            "completes_stage": previous != state.current_stage_index,
        }

    if action_text is not None:
        action: dict[str, Any] = {"text": action_text, "was_impossible": False}
        if verdict is not None and not verdict.is_possible:
            action["was_impossible"] = True
            action["reason"] = verdict.reason or (
                "No specific reason provided, but it was not feasible."
            )
        elif verdict is not None and verdict.suggested_outcome_summary_if_possible:
            action["suggestion"] = verdict.suggested_outcome_summary_if_possible
        ctx["action"] = action

    return ctx


# ── Builders ─────────────────────────────────────────────


def outline_prompt(genre: str, persona: str) -> str:
    ctx = {"genre": genre, "persona": {"name": persona, "title": persona_title(genre, persona)}}
    return render_prompt(OUTLINE_PROMPT, ctx)


def world_prompt(outline: AdventureOutline, genre: str, persona: str) -> str:
    ctx = {
        "genre": genre,
        "persona": {"name": persona, "title": persona_title(genre, persona)},
        "outline": _outline(outline),
    }
    return render_prompt(WORLD_PROMPT, ctx)


def initial_scene_prompt(state: GameState) -> str:
    return render_prompt(INITIAL_SCENE_PROMPT, build_context(state))


def next_scene_prompt(state: GameState, choice: Choice, previous_stage_index: int) -> str:
    """Prompt for the scene after `choice`; `state` already holds the new stage index."""
    ctx = build_context(state, choice=choice, previous_stage_index=previous_stage_index)
    return render_prompt(NEXT_SCENE_PROMPT, ctx)


def segment_request_prompt(prompt: str, is_initial: bool = False) -> str:
    """Append the general segment instructions to a scene prompt."""
    return render_prompt(SEGMENT_INSTRUCTIONS, {"prompt": prompt, "is_initial": is_initial})


def feasibility_prompt(state: GameState, action_text: str) -> str:
    return render_prompt(FEASIBILITY_PROMPT, build_context(state, action_text=action_text))


def custom_action_prompt(
    state: GameState, action_text: str, verdict: FeasibilityVerdict | None = None
) -> str:
    ctx = build_context(state, action_text=action_text, verdict=verdict)
    return render_prompt(CUSTOM_ACTION_PROMPT, ctx)


def examination_prompt(state: GameState) -> str:
    return render_prompt(EXAMINATION_PROMPT, build_context(state))


def repair_prompt(faulty_json_text: str, original_prompt: str) -> str:
    ctx = {
        "faulty_json_text": faulty_json_text,
        "original_context": original_prompt[:REPAIR_CONTEXT_CHARS],
    }
    return render_prompt(REPAIR_PROMPT, ctx)
