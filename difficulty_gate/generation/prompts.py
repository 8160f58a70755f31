"""
Prompts for the external text generation capability.

Every prompt asks for a single JSON object so replies can go through
``decode_structured``. Exact character bookkeeping (blank carving, answer
keys) is never delegated to the model; the prompts only ask for text and
word choices, which are validated afterwards.
"""
from __future__ import annotations

# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = """You write short English reading and vocabulary exercises for language learners.

RULES:
1. Reply with ONE JSON object and nothing else. No markdown, no commentary.
2. Use natural, grammatical English at the level of the example you are given.
3. Never copy sentences from the example. Write new content on a related theme.
4. Follow every numeric constraint exactly (word counts, number of choices).
"""

# =============================================================================
# Cloze (fill-blank)
# =============================================================================

CLOZE_PASSAGE_PROMPT = """Write a new passage for a fill-in-the-blank exercise.

EXAMPLE (do not copy it):
{source_text}

CONSTRAINTS:
- About {word_count} words (between {min_words} and {max_words}).
- {sentence_count} sentence(s), similar style and difficulty to the example.
- Same general theme, different wording and details.
- No blanks, underscores, numbering or answer options.

Return JSON: {{"text": "<passage>"}}
"""

CLOZE_SELECTION_PROMPT = """Choose {blank_count} word(s) to blank out in this passage.

PASSAGE:
{passage}

CONSTRAINTS:
- Each word must appear in the passage exactly as written.
- Content words only (nouns, verbs, adjectives, adverbs), at least {min_length} letters.
- Do not choose the last word of the passage.
- Never choose any of these words: {exclusions}

Return JSON: {{"answers": ["<word>"{extra_answer}]}}
"""

CLOZE_REPAIR_PROMPT = """Minimally rewrite this fill-in-the-blank item so it shares fewer words with its source.

SOURCE:
{source_text}

ITEM:
{candidate_text}

CONSTRAINTS:
- Keep every blank exactly as written, including its letters and underscores.
- Keep the blanks in the same order.
- Change other words (synonyms, reordering) so the item no longer copies the source.
- Keep the answers ({answers}) correct for their blanks.

Return JSON: {{"text": "<rewritten item>"}}
"""

# =============================================================================
# Slot repair and vision hints
# =============================================================================

SLOT_REPAIR_PROMPT = """This text came from OCR of a fill-in-the-blank worksheet, but the blanks were lost or garbled.

TEXT:
{text}

Rewrite the text with each blank written as its visible prefix letters followed by one
underscore per missing letter, for example "pro____" for "pro" + 4 missing letters.

CONSTRAINTS:
- prefix: 1 to 4 letters. missingCount: 1 to 8.
- At most 6 blanks.
- Do not change any other word.

Return JSON: {{"text": "<text with blanks>", "slots": [{{"prefix": "pro", "missingCount": 4}}]}}
"""

VISION_SLOTS_PROMPT = """Look at this worksheet image and list every fill-in-the-blank slot in reading order.

For each blank report the letters printed before the blank (prefix, may be empty, at most 4)
and how many letters are missing (missingCount, 1 to 10).
Report at most {max_slots} slots.

Return JSON: {{"slots": [{{"prefix": "su", "missingCount": 4, "confidence": 0.9}}]}}
"""

# =============================================================================
# Multiple choice
# =============================================================================

MC_PARSE_PROMPT = """Split this multiple-choice reading item into its parts.

ITEM:
{text}

Return JSON: {{"passage": "<passage or null>", "question": "<question>", "choices": ["..."], "correctIndex": 0}}
correctIndex is zero-based. If the answer is not marked, choose the best-supported choice.
"""

MC_PASSAGE_PROMPT = """Write a new reading passage for a comprehension question.

EXAMPLE PASSAGE (do not copy it):
{passage}

CONSTRAINTS:
- Exactly {word_count} words (plus or minus 10%).
- Same theme and reading level, new details and wording.

Return JSON: {{"text": "<passage>"}}
"""

MC_REWRITE_PROMPT = """Write a new multiple-choice reading question modelled on the example.

EXAMPLE QUESTION:
{question}

EXAMPLE CHOICES:
{choices}

{passage_block}
CONSTRAINTS:
- Exactly {choice_count} choices, all different, all the same grammatical shape
  (all short phrases or all full sentences).
- The question must require inference ({inference_style}): use wording such as
  "What can be inferred", "most likely", "suggests" or "implies".
- Do not reuse this correct answer or any of its exact wording: "{source_correct}"
- No "all of the above", "none of the above" or "both A and B" choices.
- The correct choice must be supported by the passage but must not copy its phrases.

Return JSON: {{{passage_key}"question": "<question>", "choices": ["..."], "correctIndex": 0}}
"""

MC_REPAIR_PROMPT = """Minimally rewrite this multiple-choice item so it copies less of its source.

SOURCE:
{source_text}

ITEM:
{candidate_json}

CONSTRAINTS:
- Keep exactly {choice_count} choices and keep the correct answer at index {correct_index}.
- Keep the meaning of every choice; change wording only.
- Keep an inference-style question.

Return JSON: {{{passage_key}"question": "<question>", "choices": ["..."], "correctIndex": {correct_index}}}
"""

INFERENCE_STYLES = {
    "fact_based": "infer a fact the passage implies but does not state",
    "intent_based": "infer the writer's purpose or intention",
    "emotional": "infer a person's feeling or attitude",
}
