"""Tests for tweetcord.publishers.delivery.DeliveryPipeline."""
from __future__ import annotations

from unittest.mock import MagicMock, call

from conftest import make_item, make_items

from tweetcord.errors import DestinationError, Forbidden, NetworkError, RunTimeout
from tweetcord.models.types import Media, MediaKind
from tweetcord.publishers.delivery import DeliveryPipeline


def _sent_ids(publisher) -> list[str]:
    return [c.args[0].id for c in publisher.send_item.call_args_list]


class TestOrderingAndPacing:
    def test_delivers_in_given_order(self, mock_publisher, sample_author):
        sleep = MagicMock()
        pipeline = DeliveryPipeline(mock_publisher, pacing_seconds=1.0, sleep=sleep)

        report = pipeline.deliver_all(make_items("id3", "id4", "id5"), sample_author)

        assert _sent_ids(mock_publisher) == ["id3", "id4", "id5"]
        assert report.delivered == 3
        assert report.failed == 0
        assert report.aborted is None

    def test_pauses_between_consecutive_posts(self, mock_publisher, sample_author):
        sleep = MagicMock()
        pipeline = DeliveryPipeline(mock_publisher, pacing_seconds=1.5, sleep=sleep)
        pipeline.deliver_all(make_items("id1", "id2", "id3"), sample_author)
        assert sleep.call_args_list == [call(1.5), call(1.5)]

    def test_single_post_has_no_pause(self, mock_publisher, sample_author):
        sleep = MagicMock()
        DeliveryPipeline(mock_publisher, sleep=sleep).deliver_all([make_item("id1")], sample_author)
        sleep.assert_not_called()

    def test_empty_batch(self, mock_publisher, sample_author):
        report = DeliveryPipeline(mock_publisher, sleep=MagicMock()).deliver_all([], sample_author)
        assert report.delivered == 0
        mock_publisher.send_item.assert_not_called()

    def test_only_item_media_passed(self, mock_publisher, sample_author, sample_photo):
        other = Media(key="9_9", kind=MediaKind.PHOTO, url="https://pbs.twimg.com/other.jpg")
        item = make_item("id1", media_keys=(sample_photo.key,))
        DeliveryPipeline(mock_publisher, sleep=MagicMock()).deliver_all(
            [item], sample_author, [sample_photo, other]
        )
        mock_publisher.send_item.assert_called_once_with(item, sample_author, [sample_photo])


class TestPartialFailure:
    def test_failed_item_is_skipped_and_batch_continues(self, mock_publisher, sample_author):
        mock_publisher.send_item.side_effect = [None, DestinationError("bounced"), None, None]
        sleep = MagicMock()
        pipeline = DeliveryPipeline(mock_publisher, sleep=sleep)

        report = pipeline.deliver_all(make_items("id1", "id2", "id3", "id4"), sample_author)

        assert report.attempted == 4
        assert report.delivered == 3
        assert [f.item_id for f in report.failures] == ["id2"]
        assert report.aborted is None
        assert sleep.call_count == 3

    def test_network_error_on_item_is_absorbed(self, mock_publisher, sample_author):
        mock_publisher.send_item.side_effect = NetworkError("timeout")
        report = DeliveryPipeline(mock_publisher, sleep=MagicMock()).deliver_all(
            make_items("id1", "id2"), sample_author
        )
        assert report.delivered == 0
        assert report.failed == 2
        assert report.aborted is None

    def test_unexpected_error_on_item_is_absorbed(self, mock_publisher, sample_author):
        mock_publisher.send_item.side_effect = [None, ValueError("bad embed"), None]
        report = DeliveryPipeline(mock_publisher, sleep=MagicMock()).deliver_all(
            make_items("id1", "id2", "id3"), sample_author
        )
        assert report.delivered == 2
        assert [f.item_id for f in report.failures] == ["id2"]
        assert isinstance(report.failures[0].cause, ValueError)
        assert report.aborted is None
        assert _sent_ids(mock_publisher) == ["id1", "id2", "id3"]

    def test_forbidden_stops_the_batch(self, mock_publisher, sample_author):
        mock_publisher.send_item.side_effect = [None, Forbidden("webhook deleted"), None]
        report = DeliveryPipeline(mock_publisher, sleep=MagicMock()).deliver_all(
            make_items("id1", "id2", "id3"), sample_author
        )
        assert report.delivered == 1
        assert isinstance(report.aborted, Forbidden)
        assert _sent_ids(mock_publisher) == ["id1", "id2"]


class TestDeadline:
    def test_stops_when_deadline_passed(self, mock_publisher, sample_author):
        ticks = iter([0.0, 5.0, 11.0])
        pipeline = DeliveryPipeline(
            mock_publisher, sleep=MagicMock(), clock=lambda: next(ticks)
        )
        report = pipeline.deliver_all(
            make_items("id1", "id2", "id3"), sample_author, deadline=10.0
        )
        assert report.delivered == 2
        assert isinstance(report.aborted, RunTimeout)
        assert _sent_ids(mock_publisher) == ["id1", "id2"]
