import json

import pytest

from backend.app.models import ChannelInfo, ChannelProfile, IdeaRequest, TrendingItem, TrendSummary
from backend.app.services.idea_synthesizer import (
    GENERATION_FAILED_MESSAGE,
    IdeaGenerationError,
    IdeaSynthesizer,
    SynthesisStage,
    build_idea_prompt,
    build_video_idea,
)
from backend.app.services.llm_client import AssistantRunTimeout

IDEA_REPLY = {
    "id": "from-the-model",
    "title": "I Built a City in 24 Hours",
    "concept": "Speed build challenge",
    "hashtags": ["#minecraft", "#build"],
    "viralityScore": 87,
    "viralityJustification": "Timed challenges trend",
    "monetizationStrategy": "Sponsor segment",
    "videoFormat": {"type": "Long form", "length": "12 minutes", "hooks": ["Countdown", "Reveal"]},
    "trendAnalysis": {"relevantThemes": ["speed"], "relatedContent": ["build battles"], "suggestedTags": ["city"]},
}


def make_request(**overrides):
    fields = {"niche": "gaming", "platform": "youtube", "content_type": "challenge", "region": "US"}
    fields.update(overrides)
    return IdeaRequest(**fields)


class FakeLLM:
    def __init__(self, assistant_reply=None, completion_reply=None):
        self.assistant_reply = assistant_reply
        self.completion_reply = completion_reply
        self.prompts = []

    def _answer(self, reply, prompt):
        self.prompts.append(prompt)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def run_assistant(self, prompt):
        return self._answer(self.assistant_reply, prompt)

    def complete(self, prompt):
        return self._answer(self.completion_reply, prompt)


def make_synthesizer(llm, trending=None, fetch_channel=None, summaries=None):
    summaries = summaries if summaries is not None else []

    def get_trending(region):
        if isinstance(trending, Exception):
            raise trending
        return trending or []

    def summarize(items):
        summaries.append(items)
        return TrendSummary.placeholder()

    def default_fetch_channel(channel_id):
        raise AssertionError("no channels expected")

    return IdeaSynthesizer(
        get_trending=get_trending,
        summarize=summarize,
        fetch_channel=fetch_channel or default_fetch_channel,
        llm=llm,
        id_factory=lambda: "idea-1",
        timestamp=lambda: "2024-06-15T12:00:00Z",
    )


def test_primary_path_produces_idea():
    stages = []
    llm = FakeLLM(assistant_reply=json.dumps(IDEA_REPLY))
    idea = make_synthesizer(llm).generate(make_request(), on_stage=stages.append)

    assert stages == [
        SynthesisStage.FETCHING_TRENDS,
        SynthesisStage.SUMMARIZING,
        SynthesisStage.PRIMARY_GENERATE,
        SynthesisStage.DONE,
    ]
    assert idea.id == "idea-1"
    assert idea.created_at == "2024-06-15T12:00:00Z"
    assert idea.title == "I Built a City in 24 Hours"
    assert idea.virality_score == 87
    assert idea.platform == "youtube"
    assert idea.content_type == "challenge"
    assert idea.video_format.hooks == ["Countdown", "Reveal"]
    assert idea.to_wire()["trendAnalysis"]["suggestedTags"] == ["city"]
    assert len(llm.prompts) == 1


def test_fallback_used_when_assistant_times_out():
    stages = []
    llm = FakeLLM(
        assistant_reply=AssistantRunTimeout("Timeout waiting for response"),
        completion_reply="```json\n" + json.dumps(IDEA_REPLY) + "\n```",
    )
    idea = make_synthesizer(llm).generate(make_request(), on_stage=stages.append)

    assert SynthesisStage.FALLBACK_GENERATE in stages
    assert stages[-1] == SynthesisStage.DONE
    assert idea.title == IDEA_REPLY["title"]
    assert llm.prompts[0] == llm.prompts[1]


def test_fallback_used_when_assistant_reply_is_not_json():
    llm = FakeLLM(assistant_reply="Here is your idea!", completion_reply=json.dumps(IDEA_REPLY))
    idea = make_synthesizer(llm).generate(make_request())
    assert idea.concept == "Speed build challenge"


def test_both_paths_failing_raises_generation_error():
    stages = []
    llm = FakeLLM(assistant_reply=RuntimeError("assistant down"), completion_reply="not json")

    with pytest.raises(IdeaGenerationError) as excinfo:
        make_synthesizer(llm).generate(make_request(), on_stage=stages.append)

    assert str(excinfo.value) == GENERATION_FAILED_MESSAGE
    assert stages[-1] == SynthesisStage.FAILED


def test_trending_failure_continues_with_empty_list():
    summaries = []
    llm = FakeLLM(assistant_reply=json.dumps(IDEA_REPLY))
    idea = make_synthesizer(llm, trending=RuntimeError("quota"), summaries=summaries).generate(make_request())

    assert summaries == [[]]
    assert idea.title == IDEA_REPLY["title"]


def test_failed_reference_channel_is_omitted():
    stages = []
    good = ChannelProfile(
        channel_info=ChannelInfo(id="UC_GOOD", title="Good Channel", statistics={"subscriberCount": "42"}),
        videos=[TrendingItem(video_id="v1", title="Best Video", tags=["tag"])],
    )

    def fetch_channel(channel_id):
        if channel_id == "UC_BAD":
            raise RuntimeError("channel lookup failed")
        return good

    llm = FakeLLM(assistant_reply=json.dumps(IDEA_REPLY))
    synthesizer = make_synthesizer(llm, fetch_channel=fetch_channel)
    synthesizer.generate(make_request(reference_channels=["UC_BAD", "UC_GOOD"]), on_stage=stages.append)

    assert SynthesisStage.CHANNEL_ENRICHMENT in stages
    prompt = llm.prompts[0]
    assert "Channel 1: Good Channel" in prompt
    assert "Subscribers: 42" in prompt
    assert '"Best Video"' in prompt
    assert "Channel 2" not in prompt


def test_missing_fields_get_defaults():
    idea = build_video_idea({}, make_request(), lambda: "x1", lambda: "now")

    assert idea.id == "x1"
    assert idea.title == "Untitled Video Idea"
    assert idea.concept == "No concept provided"
    assert idea.hashtags == []
    assert idea.virality_score == 0
    assert idea.video_format.type == "Short form"
    assert idea.video_format.length == "60 seconds"
    assert idea.video_format.hooks == ["Hook 1", "Hook 2", "Hook 3"]
    assert idea.trend_analysis.relevant_themes == []
    assert idea.channel_inspirations is None


def test_virality_score_is_clamped():
    request = make_request()
    assert build_video_idea({"viralityScore": 150}, request).virality_score == 100
    assert build_video_idea({"viralityScore": -5}, request).virality_score == 0
    assert build_video_idea({"viralityScore": "87.6"}, request).virality_score == 88
    assert build_video_idea({"viralityScore": "high"}, request).virality_score == 0


def test_non_finite_virality_score_becomes_zero():
    request = make_request()
    assert build_video_idea(json.loads('{"viralityScore": 1e400}'), request).virality_score == 0
    assert build_video_idea({"viralityScore": "Infinity"}, request).virality_score == 0
    assert build_video_idea({"viralityScore": "-inf"}, request).virality_score == 0
    assert build_video_idea({"viralityScore": "NaN"}, request).virality_score == 0


def test_each_idea_gets_a_fresh_id():
    request = make_request()
    first = build_video_idea(IDEA_REPLY, request)
    second = build_video_idea(IDEA_REPLY, request)
    assert first.id != second.id
    assert first.id != "from-the-model"


def test_prompt_framing_without_feedback():
    prompt = build_idea_prompt(make_request(keywords="redstone"), TrendSummary.placeholder())

    assert prompt.startswith("CREATE AN ORIGINAL viral video idea for youtube focusing on the gaming niche.")
    assert "- Keywords to incorporate: redstone" in prompt
    assert "USER FEEDBACK TO INCORPORATE" not in prompt
    assert "PREVIOUS IDEA TO IMPROVE" not in prompt
    assert "Common themes: Unable to analyze themes" in prompt


def test_prompt_framing_with_feedback_and_previous_idea():
    previous = json.dumps({"title": "Old Idea", "concept": "Old concept", "hashtags": ["#old"], "viralityScore": 40})
    request = make_request(feedback="Make it funnier", previous_idea=previous)
    prompt = build_idea_prompt(request, TrendSummary.placeholder())

    assert prompt.startswith("IMPROVE AN EXISTING viral video idea")
    assert 'Title: "Old Idea"' in prompt
    assert "Virality Score: 40%" in prompt
    assert '"Make it funnier"' in prompt
    assert "6. Directly addresses the user's feedback for improvements" in prompt


def test_unparseable_previous_idea_is_dropped():
    request = make_request(feedback="Shorter please", previous_idea="{broken")
    prompt = build_idea_prompt(request, TrendSummary.placeholder())

    assert "PREVIOUS IDEA TO IMPROVE" not in prompt
    assert "USER FEEDBACK TO INCORPORATE" in prompt
