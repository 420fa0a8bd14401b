"""Tests for the routing decision table."""

from flowgenius.workflow.router import (
    DONE,
    GENERATE_SUMMARY,
    PROCESS_USER_TURN,
    PROCESS_VOICE_INPUT,
    RouteNames,
    decide_route,
    get_routing_description,
    route_session,
    should_continue_workflow,
    should_transition_stage,
)
from flowgenius.workflow.workflow_state import Stage, UserAction, VoiceAudioData


def _audio():
    return VoiceAudioData(file_path="/tmp/rec.webm", duration=2.5, size=2048)


class TestRouteSession:
    def test_chat_routes_to_user_turn(self, make_state):
        assert route_session(make_state()) == PROCESS_USER_TURN

    def test_error_ends(self, make_state):
        state = make_state(error="boom")
        assert route_session(state) == DONE
        assert decide_route(state).condition == "has_error"

    def test_error_beats_voice(self, make_state):
        state = make_state(error="boom", voice_pending=True, voice_audio_data=_audio())
        assert route_session(state) == DONE

    def test_processing_ends(self, make_state):
        assert route_session(make_state(is_processing=True)) == DONE

    def test_pending_voice_routes_to_transcription(self, make_state):
        state = make_state(voice_pending=True, voice_audio_data=_audio())
        assert route_session(state) == PROCESS_VOICE_INPUT

    def test_transcribed_voice_is_not_reprocessed(self, make_state):
        state = make_state(voice_pending=False, voice_audio_data=_audio(), voice_transcription="hi")
        assert route_session(state) == PROCESS_USER_TURN

    def test_pending_flag_without_audio(self, make_state):
        assert route_session(make_state(voice_pending=True)) == PROCESS_USER_TURN

    def test_brainstorm_done_routes_to_summary(self, make_state):
        state = make_state(last_user_action=UserAction.BRAINSTORM_DONE)
        assert route_session(state) == GENERATE_SUMMARY

    def test_brainstorm_done_in_wrong_stage(self, make_state):
        state = make_state(last_user_action=UserAction.BRAINSTORM_DONE, stage=Stage.SUMMARY)
        assert route_session(state) == DONE

    def test_summary_done_and_prd_done_end(self, make_state):
        assert route_session(make_state(last_user_action=UserAction.SUMMARY_DONE, stage=Stage.SUMMARY)) == DONE
        assert route_session(make_state(last_user_action=UserAction.PRD_DONE, stage=Stage.PRD)) == DONE

    def test_accepts_raw_string_values(self, make_state):
        state = make_state().model_copy(update={"last_user_action": "Brainstorm Done", "stage": "brainstorm"})
        assert route_session(state) == GENERATE_SUMMARY

    def test_end_name_matches_langgraph(self):
        assert RouteNames.END.value == "__end__"
        assert DONE == "__end__"


class TestRoutingHelpers:
    def test_should_transition_stage(self, make_state):
        assert should_transition_stage(make_state(last_user_action=UserAction.BRAINSTORM_DONE))
        assert should_transition_stage(make_state(last_user_action=UserAction.SUMMARY_DONE, stage=Stage.SUMMARY))
        assert not should_transition_stage(make_state())
        assert not should_transition_stage(make_state(last_user_action=UserAction.PRD_DONE, stage=Stage.PRD))

    def test_should_continue_workflow(self, make_state):
        assert should_continue_workflow(make_state())
        assert not should_continue_workflow(make_state(error="x"))
        assert not should_continue_workflow(make_state(is_processing=True))
        assert not should_continue_workflow(make_state(last_user_action=UserAction.PRD_DONE))

    def test_routing_description(self, make_state):
        assert get_routing_description(make_state()) == "Processing user message in brainstorm stage"
        assert get_routing_description(make_state(error="x")) == "Workflow ended"
        assert "summary" in get_routing_description(make_state(last_user_action=UserAction.BRAINSTORM_DONE))
