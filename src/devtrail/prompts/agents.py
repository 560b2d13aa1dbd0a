from __future__ import annotations

JUDGE_SYSTEM_PROMPT = (
    "You are evaluating conversation interactions for relevance to a user's query. "
    "Score each interaction 0-10 for how likely it contains information that would help "
    "answer the query. Output ONLY raw JSON (no markdown code fences)."
)

JUDGE_RUBRIC = """SCORING CRITERIA:
- 9-10: Directly answers query or contains critical context
- 7-8: Highly relevant but indirect
- 5-6: Related but tangential
- 3-4: Loosely connected
- 0-2: Not relevant

Consider:
- Direct mentions of entities in the query (people, features, dates, files)
- Temporal proximity to events in the query
- Causal relationships (discussions -> decisions -> implementations)
- Technical context that helps understand the query topic

Return exactly one score per interaction, using its "id" as "item_id":
{"scores": [{"item_id": "...", "score": 8, "rationale": "Brief reason"}]}"""

INVESTIGATOR_SYSTEM_PROMPT = (
    "You are investigating a development conversation to extract findings that help "
    "answer a question and to discover critical leads worth searching for. "
    "Output ONLY raw JSON (no markdown code fences)."
)

INVESTIGATOR_TASKS = """YOUR TASKS:

1. EXTRACT FINDINGS - what in this interaction helps answer the query?
   kind: decision | problem | solution | technical_detail | context

2. IDENTIFY CRITICAL LEADS - be very selective.
   Only create a lead if it is critical to answering the query, other investigators
   have not already found it, and you are confident it adds essential context.
   At most 2 leads; use priority "high" only for leads that meet all of the above.
   kind: commit | entity | person | date | file | conversation
   value: the commit hash, name, ISO date (YYYY-MM-DD) or file path being referenced.

3. ASSESS COMPLETENESS - can the query be answered with what is known so far?

Respond with:
{
  "findings": [{"kind": "decision", "summary": "One sentence", "detail": "Full explanation with quotes",
                "related_entities": ["..."], "relevance_to_query": "...", "confidence": 0.8}],
  "leads": [{"kind": "commit", "value": "...", "search_query_text": "What to search for",
             "rationale": "Without this we cannot answer: ...", "priority": "high"}],
  "completeness": 0.7,
  "missing": ["What is still unknown"]
}"""

SYNTHESIS_SYSTEM_PROMPT = (
    "You are building an answer by incrementally incorporating findings from an ongoing "
    "investigation of a project's development history."
)

SYNTHESIS_FIRST_TASK = """Create an initial answer that:
- Starts addressing the query with what is known so far
- Shows the investigation is still running
- Uses [INVESTIGATING: topic] markers for incomplete areas"""

SYNTHESIS_UPDATE_TASK = """Update the existing answer to:
- Integrate the new findings smoothly
- Keep the narrative flowing
- Add new details and connections
- Keep [INVESTIGATING: topic] markers for areas still being explored
Duplicate findings may arrive; do not repeat a point already made."""

SYNTHESIS_FORMAT = """FORMAT REQUIREMENTS:
- Conversational and clear
- Specific, with evidence (quote findings, cite authors and dates)
- Connect findings temporally and causally when relevant

Respond with the updated answer as plain text, not JSON."""

FINALIZE_SYSTEM_PROMPT = "You are finalizing an answer after a complete investigation."

FINALIZE_TASK = """Create the final, polished answer:
1. Remove all [INVESTIGATING] markers
2. Fill remaining gaps using the complete findings
3. Ensure a coherent narrative
4. Add a brief summary if the answer is longer than three paragraphs
5. End with 3-5 follow-up questions based on what was discovered, as:

---
Follow-up questions:
- ...

Respond with the final answer as plain text."""

NO_FINDINGS_ANSWER = """I investigated your query "{query}" but did not find sufficient information in the available history.

This could mean:
- The topic is not covered by the conversations and commits available for this project
- The relevant information is in a different project or time period
- The query needs to be phrased the way developers discussed the topic

Could you provide more context or rephrase the question?"""
