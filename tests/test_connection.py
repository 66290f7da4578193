import unittest

from pysqlsynth.formation.paging import AggregateFunction
from tests.northwind import Category
from tests.params import (
    MSSQLBase,
    PostgreSQLBase,
    TestEngineBase,
    configure,
    has_env_var,
)
from tests.timed_test import TimedAsyncioTestCase

if __name__ == "__main__":
    configure()


class TestConnection(TestEngineBase):
    "Runs synthesized statements against a live database. Mixed into a test case class per dialect."

    @property
    def create_table_stmt(self) -> str:
        if self.engine.name == "mssql":
            return (
                "CREATE TABLE Categories (CategoryID int IDENTITY(1,1) PRIMARY KEY, "
                "CategoryName nvarchar(15) NOT NULL, Description nvarchar(max) NULL)"
            )
        else:
            return (
                'CREATE TABLE "Categories" ("CategoryID" integer GENERATED ALWAYS AS IDENTITY PRIMARY KEY, '
                '"CategoryName" varchar(15) NOT NULL, "Description" text NULL)'
            )

    @property
    def drop_table_stmt(self) -> str:
        if self.engine.name == "mssql":
            return "DROP TABLE IF EXISTS Categories"
        else:
            return 'DROP TABLE IF EXISTS "Categories"'

    async def test_round_trip(self) -> None:
        case = self.as_test_case()
        async with self.engine.create_connection(self.parameters) as conn:
            await conn.query(self.drop_table_stmt)
            await conn.query(self.create_table_stmt)
            try:
                beverages = Category(CategoryName="Beverages")
                key = await conn.insert(beverages)
                case.assertIsNotNone(key)
                case.assertEqual(beverages.CategoryID, key)

                categories = [
                    Category(CategoryName=name)
                    for name in ["Condiments", "Confections", "Dairy"]
                ]
                keys = await conn.insert_many(Category, categories)
                case.assertEqual(len(keys), 3)

                beverages.Description = "Soft drinks, coffees, teas"
                case.assertEqual(await conn.update(beverages), 1)

                case.assertEqual(
                    await conn.update_many(
                        Category, categories[:2], {"Description": "Sweet and savory"}
                    ),
                    2,
                )

                rows = await conn.get_aggregate(Category, AggregateFunction.COUNT)
                case.assertEqual(rows, [{"Value": 4}])

                page = await conn.get_page(
                    Category,
                    lambda c: c.CategoryName,
                    "SELECT * FROM "
                    + conn.generator.get_table_name(
                        conn.generator.get_metadata(Category)
                    ),
                    1,
                    3,
                )
                assert page is not None
                case.assertEqual([c.CategoryName for c in page], ["Dairy"])

                case.assertEqual(await conn.delete(categories[2]), 1)
            finally:
                await conn.query(self.drop_table_stmt)

    def as_test_case(self) -> unittest.TestCase:
        assert isinstance(self, unittest.TestCase)
        return self


@unittest.skipUnless(has_env_var("POSTGRESQL"), "PostgreSQL tests are disabled")
class TestPostgreSQLConnection(PostgreSQLBase, TestConnection, TimedAsyncioTestCase):
    pass


@unittest.skipUnless(has_env_var("MSSQL"), "Microsoft SQL tests are disabled")
class TestMSSQLConnection(MSSQLBase, TestConnection, TimedAsyncioTestCase):
    pass


if __name__ == "__main__":
    unittest.main()
