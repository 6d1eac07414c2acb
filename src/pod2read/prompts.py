"""
LLM prompts used throughout the application.

All prompts are centralized here for easy maintenance and consistency.
Prompts combine a role, an exact output schema, enumerated rules and
output constraints; the model is always asked for JSON only.
"""

# ============================================================================
# Shared rule blocks
# ============================================================================

_THOUGHT_SCHEMA = """{
  "text": "A clean, complete thought. One to three sentences.",
  "emphasis": ["keyword1", "keyword2"],
  "mode": "flow",
  "energy": "explanation",
  "complexity": 0.4
}"""

_THOUGHT_RULES = """Rules for "text":
- Strip every filler: um, uh, like (as filler), you know, basically, sort of, kind of, I mean, right?, so basically
- Drop false starts, repeated words and verbal tics
- Rewrite rambling speech as clear, concise prose
- A thought is one complete idea of 1-3 sentences
- Keep the speaker's meaning and voice; never add information that was not said

Rules for "emphasis":
- 0-3 words per thought carrying the most semantic weight; they are highlighted on screen
- Prefer proper nouns, numbers, technical terms and emotionally charged words
- Never emphasize articles, prepositions or common verbs (the, a, is, was, have, do, get, make)

Rules for "mode":
- "flow": the default, for prose and explanations
- "impact": short punchy statements of 3-8 words at dramatic moments or key insights
- "stack": lists, enumerations, step-by-step content
- impact pairs with climax or building_tension; stack pairs with enumeration
- Never use impact for explanation or calm_intro; those need flow

Rules for "energy" (pick exactly one):
- "calm_intro": opening, setting context
- "explanation": teaching, explaining concepts
- "building_tension": leading up to a key point
- "climax": the key insight or dramatic moment
- "enumeration": listing items
- "contrast": comparing or contrasting ideas
- "emotional": personal stories, feelings
- "question": rhetorical or real questions
- "resolution": wrapping up, concluding

Rules for "complexity":
- A number from 0.0 to 1.0
- Higher for jargon, dense ideas and multi-clause sentences; lower for simple statements and transitions

Rules for mathematical content:
- Convert spoken math to LaTeX inside dollar signs: "x squared plus 2x equals zero" becomes $x^2 + 2x = 0$
- Single $ for inline math, double $$ for an equation that deserves its own line
- "square root of x" becomes $\\sqrt{x}$, "f of x" becomes $f(x)$, "integral from a to b" becomes $\\int_a^b$, "sum from i equals 1 to n" becomes $\\sum_{i=1}^{n}$
- Only the notation goes inside dollar signs; keep the surrounding prose
- If unsure whether something is math, leave it as prose

Rules for narrative arc:
- Energy follows natural arcs: calm_intro at openings, building_tension before a climax, resolution at section ends
- Keep climax to about 10% of thoughts; overuse dilutes impact
- Every climax must be directly preceded by a building_tension thought"""

# ============================================================================
# Restructure Prompts (full transcript or chunk)
# ============================================================================

RESTRUCTURE_SYSTEM_MESSAGE = f"""You are transforming a messy video transcript into clean, structured prose for a paced reading experience. Return only a JSON object with this exact format:

{{
  "sections": [
    {{
      "title": "Section Title",
      "recap": "One sentence summary of this section.",
      "thoughts": [
        {_THOUGHT_SCHEMA}
      ]
    }}
  ],
  "takeaways": ["Key takeaway 1", "Key takeaway 2", "Key takeaway 3"]
}}

Rules for "sections":
- Split the transcript into sections at natural topic changes
- Every section has a short, specific title and at least one thought

{_THOUGHT_RULES}

Rules for "recap":
- One sentence summarizing the section's key point, shown at section breaks

Rules for "takeaways":
- 3-5 key points from the entire transcript, shown at the end as a summary card"""

# ============================================================================
# Chapter Prompts (chapter is the section; no section splitting)
# ============================================================================

CHAPTER_SYSTEM_MESSAGE = f"""You are transforming a messy excerpt from a single chapter of a video transcript into clean, structured prose for a paced reading experience. Do not split it into sections: the chapter is the section. Return only a JSON object with this exact format:

{{
  "thoughts": [
    {_THOUGHT_SCHEMA}
  ],
  "recap": "One sentence summary of this chapter."
}}

{_THOUGHT_RULES}

Rules for "recap":
- One sentence summarizing this chapter's key point"""

CHAPTER_TITLE_PREAMBLE = 'The following transcript is from the chapter titled "{title}".'

# ============================================================================
# Arc Analysis Prompts
# ============================================================================

ARC_ANALYSIS_SYSTEM_MESSAGE = """You are a story editor analyzing the narrative shape of a condensed video transcript. Return only a single JSON object with this exact format:

{
  "arc_shape": "rise",
  "staging_end_pct": 0.15,
  "tension_start_pct": 0.35,
  "climax_zone_start_pct": 0.6,
  "climax_zone_end_pct": 0.8,
  "resolution_start_pct": 0.85
}

Rules:
- "arc_shape" is one of: "rise", "fall", "fall_then_rise", "rise_then_fall", "uniform"
- Every *_pct value is a fraction of the whole transcript between 0.0 and 1.0
- Values must be non-decreasing in the order listed above
- "staging_end_pct": where the setup and context-setting ends
- "tension_start_pct": where the build-up toward the main point begins
- "climax_zone_start_pct" / "climax_zone_end_pct": the span holding the key insight or dramatic peak
- "resolution_start_pct": where the speaker starts wrapping up
- The transcript is sampled evenly, so judge positions by relative order, not by exact wording"""

# ============================================================================
# User content blocks
# ============================================================================

VIDEO_CONTEXT_HEADER = "[VIDEO CONTEXT]"
TRANSCRIPT_HEADER = "[TRANSCRIPT]"
ARC_CONTEXT_HEADER = "[NARRATIVE ARC CONTEXT]"

ARC_CONTEXT_TEMPLATE = """{header}
This excerpt covers {start:.0%}-{end:.0%} of the full transcript (overall arc shape: {shape}).
Narrative phase for this excerpt: {phase_label}.
Arc zones: staging until {staging_end:.0%}, tension from {tension_start:.0%}, climax zone {climax_start:.0%}-{climax_end:.0%}, resolution from {resolution_start:.0%}.
Guidance: {guidance}"""

ARC_PHASE_GUIDANCE = {
    "staging": (
        "Set the scene. Favor calm_intro and explanation energy. "
        "No climax yet; the key moment comes much later."
    ),
    "development": (
        "Develop the ideas. Favor explanation, enumeration, contrast and question energy. "
        "No climax yet; save it for the climax zone."
    ),
    "tension_building": (
        "Build toward the key moment. Use building_tension for thoughts that set up what is coming. "
        "No climax yet unless the excerpt clearly reaches its peak."
    ),
    "climax": (
        "This excerpt sits in the climax zone. 1-3 climax thoughts are appropriate here, "
        "each directly preceded by a building_tension thought."
    ),
    "resolution": (
        "Wind down. Favor resolution and explanation energy and summarize what was established. "
        "Avoid new climax thoughts."
    ),
}
