"""Tests for mode compatibility resolution."""

import itertools

import pytest

from activities.mode_resolver import MediaShape, resolve, resolve_shape, shape_matches
from config.error_policies import IncompatibleMediaError
from models.modes import ContentIntent, GenerationMode, get_descriptor, iter_descriptors

from conftest import audio, image, video


class TestResolve:
    """Test cases for resolve()."""

    def test_single_image_for_image_intent(self):
        """One image with image intent offers image edits and no video modes."""
        result = resolve([image()], ContentIntent.IMAGE)

        assert GenerationMode.NANO_BANANA_EDIT in result.available_modes
        assert GenerationMode.CHARACTER_VARIATION in result.available_modes
        assert all(not get_descriptor(mode).is_video for mode in result.available_modes)
        assert result.corrected_mode == GenerationMode.NANO_BANANA_EDIT

    def test_two_images_for_video_intent(self):
        """Two images with video intent offer the end-frame mode only."""
        result = resolve([image("a"), image("b")], ContentIntent.VIDEO)

        assert GenerationMode.MINIMAX_ENDFRAME in result.available_modes
        assert GenerationMode.KLING_MASTER_I2V not in result.available_modes
        assert GenerationMode.VEO3_FAST_I2V not in result.available_modes
        assert result.corrected_mode == GenerationMode.MINIMAX_ENDFRAME

    def test_no_media_offers_text_only_modes(self):
        result = resolve([], ContentIntent.VIDEO)

        assert result.available_modes
        assert all(get_descriptor(mode).text_only for mode in result.available_modes)
        assert GenerationMode.KLING_MASTER_T2V in result.available_modes

    def test_current_mode_kept_when_still_valid(self):
        result = resolve([image()], ContentIntent.IMAGE, GenerationMode.FLUX_PRO_KONTEXT)

        assert result.corrected_mode == GenerationMode.FLUX_PRO_KONTEXT
        assert not result.changed

    def test_current_mode_replaced_when_invalid(self):
        """A single-image mode is dropped once a second image is uploaded."""
        result = resolve([image("a"), image("b")], ContentIntent.IMAGE, GenerationMode.QWEN_IMAGE_EDIT)

        assert result.changed
        assert result.corrected_mode == GenerationMode.NANO_BANANA_EDIT

    def test_no_compatible_mode(self):
        result = resolve([image(), image(), image()], ContentIntent.VIDEO, GenerationMode.KLING_MASTER_I2V)

        assert result.available_modes == []
        assert result.corrected_mode is None

    def test_mixed_images_and_videos_rejected(self):
        with pytest.raises(IncompatibleMediaError):
            resolve([image(), video()], ContentIntent.VIDEO)

    def test_audio_modes(self):
        """Audio alongside an image or a video unlocks avatar and lip-sync modes."""
        avatar = resolve([image(), audio()], ContentIntent.VIDEO)
        lipsync = resolve([video(), audio()], ContentIntent.VIDEO)

        assert avatar.available_modes == [GenerationMode.KLING_AI_AVATAR]
        assert GenerationMode.LIPSYNC_2_PRO in lipsync.available_modes
        assert GenerationMode.LATENTSYNC in lipsync.available_modes
        assert GenerationMode.RUNWAY_ALEPH not in lipsync.available_modes

    def test_allowed_modes_restricts(self):
        result = resolve(
            [image()],
            ContentIntent.IMAGE,
            allowed_modes=[GenerationMode.FLUX_PRO_KONTEXT, GenerationMode.KLING_MASTER_I2V]
        )

        assert result.available_modes == [GenerationMode.FLUX_PRO_KONTEXT]

    def test_idempotent(self):
        media = [image()]
        first = resolve(media, ContentIntent.IMAGE)
        second = resolve(media, ContentIntent.IMAGE, first.corrected_mode)

        assert first.available_modes == second.available_modes
        assert second.corrected_mode == first.corrected_mode


class TestShapeMatching:
    """Every offered mode must be satisfiable by the uploaded media."""

    @pytest.mark.parametrize("images,videos,audio_count", [
        counts for counts in itertools.product(range(4), range(2), range(2))
        if not (counts[0] and counts[1])
    ])
    def test_available_modes_are_satisfiable(self, images, videos, audio_count):
        shape = MediaShape.from_counts(images=images, videos=videos, audio=audio_count)

        for intent in ContentIntent:
            for mode in resolve_shape(shape, intent).available_modes:
                descriptor = get_descriptor(mode)
                assert descriptor.output_kind == intent
                assert descriptor.min_images <= images <= descriptor.max_images
                assert videos == descriptor.video_inputs
                assert (audio_count == 1) == descriptor.requires_audio

    def test_text_only_modes_need_empty_shape(self):
        for descriptor in iter_descriptors():
            if descriptor.text_only:
                assert shape_matches(descriptor, MediaShape())
                assert not shape_matches(descriptor, MediaShape(images=1))

    def test_from_counts_rejects_mixed(self):
        with pytest.raises(IncompatibleMediaError):
            MediaShape.from_counts(images=1, videos=1)
