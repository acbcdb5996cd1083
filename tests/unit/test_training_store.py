"""Unit tests for training data persistence."""

import random
import uuid

import numpy as np
import pytest

from studentml.core import errors
from studentml.core.schema import ImageTraining, PagingOptions, ProjectType, TextTraining


class TestTextTraining:
    """Tests for storing and reading text training."""

    def test_store_and_get(self, training_store, projectid):
        """Test storing a single example."""
        stored = training_store.store_text_training(projectid, "I love this", "happy")

        retrieved = training_store.get_text_training(projectid)
        assert retrieved == [stored]
        assert isinstance(retrieved[0], TextTraining)

    def test_store_without_label(self, training_store, projectid):
        """Test unlabelled examples are stored with no label."""
        training_store.store_text_training(projectid, "no label here")

        [example] = training_store.get_text_training(projectid)
        assert example.label is None
        assert training_store.count_text_training_by_label(projectid) == {}

    def test_store_cleans_text(self, training_store, projectid):
        """Test tabs and new lines are stored as spaces."""
        training_store.store_text_training(projectid, "one\ttwo\nthree", "x")
        [example] = training_store.get_text_training(projectid)
        assert example.textdata == "one two three"

    def test_store_invalid(self, training_store, projectid):
        """Test nothing is stored for invalid input."""
        with pytest.raises(errors.MissingAttribute):
            training_store.store_text_training(projectid, "", "x")
        assert training_store.count_text_training(projectid) == 0

    def test_bulk_store(self, training_store, projectid, make_text_items):
        """Test bulk storing and counting by label."""
        items, labels = make_text_items(6, 7)

        stored = training_store.bulk_store_text_training(projectid, items)

        assert len(stored) == 42
        assert training_store.count_text_training(projectid) == 42
        counts = training_store.count_text_training_by_label(projectid)
        assert counts == {label: 7 for label in labels}

    def test_bulk_store_is_atomic(self, training_store, projectid):
        """Test one invalid item means nothing is stored."""
        items = [
            {"textdata": "first", "label": "a"},
            {"textdata": None, "label": "b"},
            {"textdata": "third", "label": "c"},
        ]
        with pytest.raises(errors.MissingAttribute):
            training_store.bulk_store_text_training(projectid, items)
        assert training_store.count_text_training(projectid) == 0

    def test_get_in_insertion_order(self, training_store, projectid):
        """Test retrieval follows insertion order across the whole set."""
        texts = [f"example {i}" for i in range(52)]
        training_store.bulk_store_text_training(
            projectid, [{"textdata": text, "label": "x"} for text in texts]
        )

        everything = training_store.get_text_training(projectid, PagingOptions(start=0, limit=52))
        assert [example.textdata for example in everything] == texts

        window = training_store.get_text_training(projectid, PagingOptions(start=10, limit=40))
        assert [example.textdata for example in window] == texts[10:50]

    def test_default_paging(self, training_store, projectid):
        """Test the default window returns the first 50 examples."""
        training_store.bulk_store_text_training(
            projectid, [{"textdata": f"t{i}"} for i in range(60)]
        )
        page = training_store.get_text_training(projectid)
        assert len(page) == 50
        assert page[0].textdata == "t0"

    @pytest.mark.parametrize("start, limit, expected", [
        (0, 5, 5),
        (10, 5, 5),
        (18, 5, 2),
        (20, 5, 0),
        (25, 5, 0),
        (3, 0, 0),
    ])
    def test_paging_windows(self, training_store, projectid, start, limit, expected):
        """Test windows near and past the end of the data."""
        training_store.bulk_store_text_training(
            projectid, [{"textdata": f"t{i}"} for i in range(20)]
        )
        page = training_store.get_text_training(projectid, PagingOptions(start=start, limit=limit))
        assert [example.textdata for example in page] == [f"t{i}" for i in range(20)][start:start + limit]
        assert len(page) == expected

    def test_scoped_by_project(self, training_store):
        """Test projects never see each other's examples."""
        first, second = str(uuid.uuid1()), str(uuid.uuid1())
        training_store.store_text_training(first, "mine", "a")
        training_store.store_text_training(second, "yours", "a")

        assert [e.textdata for e in training_store.get_text_training(first)] == ["mine"]
        assert training_store.count_text_training(second) == 1

    def test_get_by_label(self, training_store, projectid, make_text_items):
        """Test filtering by label keeps insertion order."""
        items, labels = make_text_items(3, 4)
        random.Random(7).shuffle(items)
        training_store.bulk_store_text_training(projectid, items)

        for label in labels:
            expected = [item["textdata"] for item in items if item["label"] == label]
            found = training_store.get_text_training_by_label(projectid, label)
            assert [example.textdata for example in found] == expected

    def test_get_by_label_paged(self, training_store, projectid):
        """Test paging applies within a label."""
        training_store.bulk_store_text_training(projectid, [
            {"textdata": f"t{i}", "label": "even" if i % 2 == 0 else "odd"} for i in range(20)
        ])
        page = training_store.get_text_training_by_label(
            projectid, "odd", PagingOptions(start=2, limit=3)
        )
        assert [example.textdata for example in page] == ["t5", "t7", "t9"]

    def test_get_by_unknown_label(self, training_store, projectid):
        """Test an unknown label gives an empty list."""
        training_store.store_text_training(projectid, "hello", "a")
        assert training_store.get_text_training_by_label(projectid, "b") == []

    def test_rename_label(self, training_store, projectid, make_text_items):
        """Test renaming relabels every matching example."""
        items, labels = make_text_items(3, 5)
        training_store.bulk_store_text_training(projectid, items)
        old, new = labels[1], "renamed"

        renamed = training_store.rename_text_training_label(projectid, old, new)

        assert renamed == 5
        counts = training_store.count_text_training_by_label(projectid)
        assert counts == {labels[0]: 5, new: 5, labels[2]: 5}
        assert training_store.get_text_training_by_label(projectid, old) == []

    def test_rename_merges_into_existing_label(self, training_store, projectid):
        """Test renaming onto a label already in use merges the two."""
        training_store.bulk_store_text_training(projectid, [
            {"textdata": "a", "label": "cat"},
            {"textdata": "b", "label": "kitten"},
        ])
        training_store.rename_text_training_label(projectid, "kitten", "cat")
        assert training_store.count_text_training_by_label(projectid) == {"cat": 2}

    def test_rename_unknown_label(self, training_store, projectid):
        """Test renaming an unused label changes nothing."""
        training_store.store_text_training(projectid, "hello", "a")
        assert training_store.rename_text_training_label(projectid, "zzz", "b") == 0
        assert training_store.count_text_training_by_label(projectid) == {"a": 1}

    def test_rename_scoped_by_project(self, training_store):
        """Test renaming leaves other projects untouched."""
        first, second = str(uuid.uuid1()), str(uuid.uuid1())
        training_store.store_text_training(first, "one", "a")
        training_store.store_text_training(second, "two", "a")

        training_store.rename_text_training_label(first, "a", "b")

        assert training_store.count_text_training_by_label(second) == {"a": 1}

    def test_training_labels(self, training_store, projectid):
        """Test the set of labels in use."""
        training_store.bulk_store_text_training(projectid, [
            {"textdata": "1", "label": "a"},
            {"textdata": "2", "label": "b"},
            {"textdata": "3", "label": "a"},
            {"textdata": "4"},
        ])
        assert training_store.get_training_labels(projectid) == {"a", "b"}

    def test_delete_by_project(self, training_store, projectid, make_text_items):
        """Test deleting everything, twice."""
        items, _ = make_text_items(2, 3)
        training_store.bulk_store_text_training(projectid, items)

        assert training_store.delete_text_training_by_project_id(projectid) == 6
        assert training_store.count_text_training(projectid) == 0
        assert training_store.delete_text_training_by_project_id(projectid) == 0

    def test_delete_by_label(self, training_store, projectid):
        """Test deleting the examples of one label."""
        training_store.bulk_store_text_training(projectid, [
            {"textdata": "1", "label": "a"},
            {"textdata": "2", "label": "b"},
            {"textdata": "3", "label": "a"},
        ])
        deleted = training_store.delete_training_by_label(ProjectType.TEXT, projectid, "a")

        assert deleted == 2
        assert training_store.count_text_training_by_label(projectid) == {"b": 1}


class TestNumberTraining:
    """Tests for storing and reading number training."""

    def test_store_and_get(self, training_store, projectid):
        """Test storing a single example keeps its numbers."""
        training_store.store_number_training(projectid, [1, 3, 4.3, -5.1], "mylabel")

        [example] = training_store.get_number_training(projectid)
        assert example.numberdata == (1.0, 3.0, 4.3, -5.1)
        assert example.label == "mylabel"

    def test_store_keeps_precision(self, training_store, projectid):
        """Test stored numbers read back exactly."""
        values = [0.1, 1 / 3, -999.888, 1e-12, 123456789.123]
        training_store.store_number_training(projectid, values)
        [example] = training_store.get_number_training(projectid)
        assert list(example.numberdata) == values

    def test_store_checks_field_count(self, training_store, projectid):
        """Test the owning project's field count is enforced when given."""
        with pytest.raises(errors.NumberDataMismatch):
            training_store.store_number_training(projectid, [1, 2, 3], "x", num_fields=2)

    def test_bulk_store_and_count(self, training_store, projectid):
        """Test bulk storing number examples."""
        items = [{"numberdata": [i, i * 2], "label": "even" if i % 2 == 0 else "odd"}
                 for i in range(10)]

        training_store.bulk_store_number_training(projectid, items, num_fields=2)

        assert training_store.count_number_training(projectid) == 10
        assert training_store.count_number_training_by_label(projectid) == {"even": 5, "odd": 5}
        odd = training_store.get_number_training_by_label(projectid, "odd")
        assert [example.numberdata for example in odd] == [(i, i * 2) for i in range(1, 10, 2)]

    def test_bulk_store_is_atomic(self, training_store, projectid):
        """Test one non-numeric item means nothing is stored."""
        items = [{"numberdata": [1, 2]}, {"numberdata": [1, "two"]}]
        with pytest.raises(errors.NonNumericData):
            training_store.bulk_store_number_training(projectid, items)
        assert training_store.count_number_training(projectid) == 0

    def test_matrix(self, training_store, projectid):
        """Test exporting examples as a feature matrix."""
        training_store.bulk_store_number_training(projectid, [
            {"numberdata": [1, 2], "label": "a"},
            {"numberdata": [3, 4], "label": "b"},
            {"numberdata": [5], "label": None},
        ])

        matrix, labels = training_store.get_number_training_matrix(projectid)

        assert matrix.shape == (3, 2)
        np.testing.assert_array_equal(matrix[:2], [[1, 2], [3, 4]])
        assert matrix[2, 0] == 5
        assert np.isnan(matrix[2, 1])
        assert labels == ["a", "b", None]

    def test_matrix_empty(self, training_store, projectid):
        """Test an empty project gives an empty matrix."""
        matrix, labels = training_store.get_number_training_matrix(projectid)
        assert matrix.shape == (0, 0)
        assert labels == []

    def test_delete_by_project(self, training_store, projectid):
        """Test deleting every number example."""
        training_store.store_number_training(projectid, [1])
        assert training_store.delete_number_training_by_project_id(projectid) == 1
        assert training_store.delete_number_training_by_project_id(projectid) == 0


class TestNumberFieldCount:
    """Tests for number data matching the stored project's fields."""

    @pytest.fixture
    def weather(self, project_store, factory):
        return project_store.store_project(factory.create_project("bob", "myclass", "numbers", "weather", "en", [
            {"name": "temperature", "type": "number"},
            {"name": "wind", "type": "number"},
        ]))

    def test_store_rejects_wrong_length(self, training_store, weather):
        """Test a single example must have one value per project field."""
        with pytest.raises(errors.NumberDataMismatch):
            training_store.store_number_training(weather.id, [1, 2, 3], "picnic")
        assert training_store.count_number_training(weather.id) == 0

    def test_bulk_store_rejects_wrong_length(self, training_store, weather):
        """Test one wrong-length item means nothing from the batch is stored."""
        items = [
            {"numberdata": [1, 2], "label": "picnic"},
            {"numberdata": [1, 2, 3], "label": "picnic"},
        ]
        with pytest.raises(errors.NumberDataMismatch):
            training_store.bulk_store_number_training(weather.id, items)
        assert training_store.count_number_training(weather.id) == 0

    def test_matching_length_is_stored(self, training_store, weather):
        """Test examples with one value per field are accepted."""
        training_store.store_number_training(weather.id, [21.5, 3], "picnic")
        training_store.bulk_store_number_training(weather.id, [{"numberdata": [4, 40], "label": "stay_home"}])
        assert training_store.count_number_training(weather.id) == 2

    def test_explicit_field_count_overrides(self, training_store, weather):
        """Test a field count passed by the caller is used instead of the stored one."""
        training_store.store_number_training(weather.id, [1, 2, 3], "picnic", num_fields=3)
        with pytest.raises(errors.NumberDataMismatch):
            training_store.store_number_training(weather.id, [1, 2], "picnic", num_fields=3)
        assert training_store.count_number_training(weather.id) == 1


class TestImageTraining:
    """Tests for storing and reading image training."""

    URL = "http://images.com/example/image{}.jpg"

    def test_store_and_get(self, training_store, projectid):
        """Test storing a single image example."""
        training_store.store_image_training(projectid, self.URL.format(1), "cat")

        [example] = training_store.get_image_training(projectid)
        assert isinstance(example, ImageTraining)
        assert example.imageurl == self.URL.format(1)
        assert example.label == "cat"

    def test_rejects_long_urls(self, training_store, projectid):
        """Test URLs longer than the limit are not stored."""
        with pytest.raises(errors.UrlTooLong):
            training_store.store_image_training(projectid, "http://x/" + "a" * 2000, "cat")
        assert training_store.count_image_training(projectid) == 0

    def test_bulk_store_and_by_label(self, training_store, projectid):
        """Test bulk storing images and reading one label."""
        items = [{"imageurl": self.URL.format(i), "label": "cat" if i < 3 else "dog"}
                 for i in range(5)]
        training_store.bulk_store_image_training(projectid, items)

        assert training_store.count_image_training(projectid) == 5
        assert training_store.count_image_training_by_label(projectid) == {"cat": 3, "dog": 2}
        dogs = training_store.get_image_training_by_label(projectid, "dog")
        assert [example.imageurl for example in dogs] == [self.URL.format(3), self.URL.format(4)]
        assert training_store.get_training_labels(projectid, ProjectType.IMAGES) == {"cat", "dog"}

    def test_delete_by_project(self, training_store, projectid):
        """Test deleting every image example."""
        training_store.store_image_training(projectid, self.URL.format(1))
        assert training_store.delete_image_training_by_project_id(projectid) == 1
        assert training_store.get_image_training(projectid) == []


class TestGenericTraining:
    """Tests for the project-type dispatching operations."""

    def test_get_training_without_paging(self, training_store, projectid):
        """Test getting every example regardless of count."""
        training_store.bulk_store_text_training(
            projectid, [{"textdata": f"t{i}"} for i in range(75)]
        )
        assert len(training_store.get_training(ProjectType.TEXT, projectid)) == 75

    def test_count_by_type(self, training_store, projectid):
        """Test counts are kept per training table."""
        training_store.store_text_training(projectid, "hello", "a")
        training_store.store_number_training(projectid, [1, 2], "a")
        training_store.store_number_training(projectid, [3, 4], "b")

        assert training_store.count_training(ProjectType.TEXT, projectid) == 1
        assert training_store.count_training(ProjectType.NUMBERS, projectid) == 2
        assert training_store.count_training(ProjectType.IMAGES, projectid) == 0
        assert training_store.count_training_by_label(ProjectType.NUMBERS, projectid) == {
            "a": 1, "b": 1,
        }

    def test_delete_by_project_only_touches_one_type(self, training_store, projectid):
        """Test deleting one type leaves the others."""
        training_store.store_text_training(projectid, "hello")
        training_store.store_image_training(projectid, "http://x/y.png")

        training_store.delete_training_by_project_id(ProjectType.TEXT, projectid)

        assert training_store.count_training(ProjectType.IMAGES, projectid) == 1
