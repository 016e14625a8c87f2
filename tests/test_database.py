from __future__ import annotations

import pytest

from pipeline.models import ExtractedImage, ExtractedQuestion


class TestDocumentPairs:
    def test_create_and_get(self, store, document):
        loaded = store.get_document_pair(document.id)
        assert loaded.status == "pending"
        assert loaded.questions_file_name == "questions.pdf"
        assert loaded.expected_titles == ["Kinematics"]
        assert store.get_document_pair("missing") is None

    def test_claim_is_compare_and_swap(self, store, document):
        assert store.claim_document_pair(document.id) is True
        assert store.claim_document_pair(document.id) is False
        assert store.get_document_pair(document.id).status == "processing"

        store.update_document_pair(document.id, status="failed", error_message="boom")
        assert store.claim_document_pair(document.id) is True
        assert store.get_document_pair(document.id).error_message is None

    def test_completed_pair_cannot_be_claimed(self, store, document):
        store.update_document_pair(document.id, status="completed")
        assert store.claim_document_pair(document.id) is False

    def test_unknown_column_is_rejected(self, store, document):
        with pytest.raises(ValueError):
            store.update_document_pair(document.id, id="other")


class TestJobs:
    def test_job_lifecycle(self, store, document):
        job = store.create_job(document.id)
        store.update_job(job.id, status="processing", questions_external_id="ext-q", progress_percentage=40)

        loaded = store.get_job(job.id)
        assert loaded.status == "processing"
        assert loaded.external_id("questions") == "ext-q"
        assert loaded.external_id("solutions") is None
        assert [j.id for j in store.get_jobs("processing")] == [job.id]
        assert store.get_jobs("completed") == []

    def test_job_log(self, store, document):
        job = store.create_job(document.id)
        store.log_job_event(job.id, "info", "started", {"side": "questions"})
        store.log_job_event(job.id, "error", "failed")

        logs = store.get_job_logs(job.id)
        assert [entry["log_level"] for entry in logs] == ["info", "error"]
        assert logs[0]["details"] == {"side": "questions"}
        assert logs[1]["details"] is None


class TestImagesAndQuestions:
    def test_images_are_recorded_once(self, store, document):
        image = ExtractedImage(document.id, "questions", "fig1.png", "https://x/fig1.png")
        store.record_image(image)
        store.record_image(ExtractedImage(document.id, "questions", "fig1.png", "https://x/other.png"))
        store.record_image(ExtractedImage(document.id, "solutions", "fig1.png", "https://x/s.png"))

        assert store.get_images(document.id, "questions") == [image]
        assert len(store.get_images(document.id)) == 2

    def test_save_questions(self, store, document):
        questions = [
            ExtractedQuestion(2, "Second", {"A": "x"}, "A", "mcq"),
            ExtractedQuestion(1, "First", {}, "42", "integer"),
        ]
        assert store.save_questions(document.id, questions) == 2

        rows = store.get_questions(document.id)
        assert [row["question_number"] for row in rows] == [1, 2]
        assert rows[1]["options"] == {"A": "x"}
        assert rows[0]["options"] is None
        assert {row["verification_status"] for row in rows} == {"pending"}
