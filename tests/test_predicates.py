import unittest

from pysqlsynth.errors import MalformedJoinPredicateError
from pysqlsynth.formation.expressions import Comparison, FieldAccess, capture, coerce
from pysqlsynth.formation.predicates import (
    JoinSpec,
    Side,
    extract_key,
    extract_key_type,
    get_member_name,
    join,
)
from tests.northwind import Category, Customer, Product


class TestCapture(unittest.TestCase):
    def test_field_access(self) -> None:
        expression = capture(lambda p: p.ProductName, Product)
        self.assertIsInstance(expression.body, FieldAccess)
        self.assertEqual(str(expression), "lambda p: p.ProductName")

    def test_comparison(self) -> None:
        expression = capture(lambda p, c: p.CategoryID == c.CategoryID, Product, Category)
        self.assertIsInstance(expression.body, Comparison)
        self.assertEqual(str(expression), "lambda p, c: p.CategoryID == c.CategoryID")

    def test_coercion(self) -> None:
        expression = capture(
            lambda p, c: coerce(p.CategoryID, int) == c.CategoryID, Product, Category
        )
        self.assertEqual(
            str(expression), "lambda p, c: coerce(p.CategoryID, int) == c.CategoryID"
        )

    def test_truth_value(self) -> None:
        with self.assertRaises(TypeError):
            capture(
                lambda p, c: p.CategoryID == c.CategoryID and p.ProductID == c.CategoryID,
                Product,
                Category,
            )

    def test_parameter_count(self) -> None:
        with self.assertRaises(TypeError):
            capture(lambda p: p.CategoryID, Product, Category)


class TestPredicates(unittest.TestCase):
    def test_extract_key(self) -> None:
        predicate = lambda p, c: p.CategoryID == c.CategoryID  # noqa: E731
        self.assertEqual(extract_key(predicate, Side.LEFT, Product, Category), "CategoryID")
        self.assertEqual(extract_key(predicate, Side.RIGHT, Product, Category), "CategoryID")
        self.assertIs(extract_key_type(predicate, Side.LEFT, Product, Category), Product)
        self.assertIs(extract_key_type(predicate, Side.RIGHT, Product, Category), Category)

    def test_extract_key_coercion(self) -> None:
        predicate = lambda p, c: coerce(p.CategoryID, int) == c.CategoryID  # noqa: E731
        self.assertEqual(extract_key(predicate, Side.LEFT, Product, Category), "CategoryID")

        predicate = lambda p, c: p.CategoryID == coerce(c.CategoryID, int)  # noqa: E731
        self.assertEqual(extract_key(predicate, Side.RIGHT, Product, Category), "CategoryID")

    def test_nested_coercion(self) -> None:
        predicate = lambda p, c: coerce(coerce(p.CategoryID, int), int) == c.CategoryID  # noqa: E731
        with self.assertRaises(MalformedJoinPredicateError) as cm:
            extract_key(predicate, Side.LEFT, Product, Category)
        self.assertEqual(cm.exception.side, "left")
        self.assertIn("left side", str(cm.exception))
        self.assertIn("coerce(coerce(p.CategoryID, int), int) == c.CategoryID", str(cm.exception))

    def test_not_equality(self) -> None:
        for predicate in [
            lambda p, c: p.CategoryID != c.CategoryID,
            lambda p, c: p.CategoryID < c.CategoryID,
            lambda p, c: True,
        ]:
            with self.subTest(predicate=predicate):
                with self.assertRaises(MalformedJoinPredicateError):
                    extract_key(predicate, Side.LEFT, Product, Category)

    def test_constant_operand(self) -> None:
        predicate = lambda p, c: p.CategoryID == 1  # noqa: E731
        for side in [Side.LEFT, Side.RIGHT]:
            with self.subTest(side=side):
                with self.assertRaises(MalformedJoinPredicateError) as cm:
                    extract_key(predicate, side, Product, Category)
                self.assertEqual(cm.exception.side, "right")

    def test_invalid_other_side(self) -> None:
        predicate = lambda p, c: p.CategoryID == c.Nope  # noqa: E731
        with self.assertRaises(MalformedJoinPredicateError) as cm:
            extract_key_type(predicate, Side.LEFT, Product, Category)
        self.assertEqual(cm.exception.side, "right")

    def test_wrong_parameter(self) -> None:
        predicate = lambda p, c: c.CategoryID == p.CategoryID  # noqa: E731
        with self.assertRaises(MalformedJoinPredicateError) as cm:
            extract_key(predicate, Side.LEFT, Product, Category)
        self.assertEqual(cm.exception.side, "left")

    def test_missing_field(self) -> None:
        predicate = lambda p, c: p.CategoryName == c.CategoryName  # noqa: E731
        with self.assertRaises(MalformedJoinPredicateError) as cm:
            extract_key(predicate, Side.LEFT, Product, Category)
        self.assertIn("CategoryName", str(cm.exception))

    def test_boolean_operator(self) -> None:
        predicate = lambda p, c: p.CategoryID == c.CategoryID or p.ProductID == c.CategoryID  # noqa: E731
        with self.assertRaises(MalformedJoinPredicateError):
            extract_key(predicate, Side.LEFT, Product, Category)


class TestJoinSpec(unittest.TestCase):
    def test_join_predicate(self) -> None:
        spec = join(Product, Category, lambda p, c: p.CategoryID == c.CategoryID)
        self.assertEqual(spec, JoinSpec(Product, Category, "CategoryID", "CategoryID"))
        self.assertEqual(str(spec), "Product.CategoryID == Category.CategoryID")

    def test_join_field_names(self) -> None:
        spec = join(Product, Category, ("CategoryID", "CategoryID"))
        self.assertEqual(spec, JoinSpec(Product, Category, "CategoryID", "CategoryID"))

        with self.assertRaises(MalformedJoinPredicateError) as cm:
            join(Product, Category, ("CategoryID", "CategoryName_"))
        self.assertEqual(cm.exception.side, "right")

    def test_member_name(self) -> None:
        self.assertEqual(get_member_name(lambda p: p.ProductName, Product), "ProductName")
        self.assertEqual(get_member_name("ProductName", Product), "ProductName")
        self.assertEqual(get_member_name(lambda c: coerce(c.Phone, str), Customer), "Phone")

        with self.assertRaises(MalformedJoinPredicateError):
            get_member_name(lambda p: p.Nope, Product)
        with self.assertRaises(MalformedJoinPredicateError):
            get_member_name("Nope", Product)
        with self.assertRaises(MalformedJoinPredicateError):
            get_member_name(lambda p: p.ProductID == 1, Product)


if __name__ == "__main__":
    unittest.main()
