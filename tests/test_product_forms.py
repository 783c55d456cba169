import re

import pytest

from services.catalog_service.product_forms import (
    ProductForm,
    ProductFormError,
    append_images,
    default_sku,
    move_image,
    remove_image,
)

IMAGES = ["a.jpg", "b.jpg", "c.jpg", "d.jpg"]


@pytest.mark.parametrize(
    "old_index,new_index,expected",
    [
        (0, 2, ["b.jpg", "c.jpg", "a.jpg", "d.jpg"]),
        (3, 0, ["d.jpg", "a.jpg", "b.jpg", "c.jpg"]),
        (1, 1, IMAGES),
        (1, 99, ["a.jpg", "c.jpg", "d.jpg", "b.jpg"]),
        (7, 0, IMAGES),
    ],
)
def test_move_image(old_index, new_index, expected):
    assert move_image(IMAGES, old_index, new_index) == expected


def test_move_image_does_not_mutate_input():
    images = list(IMAGES)
    move_image(images, 0, 3)
    assert images == IMAGES


def test_remove_and_append_images():
    assert remove_image(IMAGES, 1) == ["a.jpg", "c.jpg", "d.jpg"]
    assert append_images(["a.jpg"], ["b.jpg", "a.jpg", ""]) == ["a.jpg", "b.jpg"]


def test_default_sku_formats():
    assert default_sku("AI", timestamp_ms=1700000000000, with_suffix=False) == "AI-1700000000000"
    assert re.fullmatch(r"PROD-1700000000000-[a-z0-9]{6}", default_sku("PROD", timestamp_ms=1700000000000))


def test_size_rows():
    form = ProductForm(name_en="Boots", price=100)

    assert form.add_size("42", 3)
    assert form.add_size("43", 5)
    assert not form.add_size("42", 1)
    assert not form.add_size(" ", 1)
    assert not form.add_size("44", 0)

    form.update_size_stock("43", 2)
    assert form.total_stock() == 5

    form.remove_size(0)
    assert [size.size for size in form.sizes] == ["43"]


def test_tags_are_unique():
    form = ProductForm()
    form.add_tag("tactical")
    form.add_tag("tactical")
    form.add_tag("waterproof")
    form.remove_tag("tactical")

    assert form.tags == ["waterproof"]


def test_missing_required_fields():
    with pytest.raises(ProductFormError) as excinfo:
        ProductForm().to_product_data()

    assert excinfo.value.errors == ["name_en is required", "price is required", "stock is required"]


def test_sizes_replace_stock_requirement():
    form = ProductForm(name_en="Boots", price=100)
    form.add_size("42", 3)
    form.add_size("43", 4)

    data = form.to_product_data()

    assert data.stock == 7
    assert data.sku.startswith("PROD-")


def test_negative_price_rejected():
    with pytest.raises(ProductFormError):
        ProductForm(name_en="Boots", price=-1, stock=1).to_product_data()


def test_ai_drafts_get_ai_sku():
    data = ProductForm(name_en="Knife", price=80, stock=2, min_order_quantity=0).to_product_data(sku_prefix="AI")

    assert re.fullmatch(r"AI-\d+", data.sku)
    assert data.min_order_quantity == 1
