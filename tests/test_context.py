import typing
import unittest
import uuid
from decimal import Decimal

from pysqlsynth.base import GeneratorOptions
from pysqlsynth.connection import ConnectionParameters
from pysqlsynth.dialect.mssql.generator import MSSQLGenerator
from pysqlsynth.errors import (
    BatchTooLargeError,
    EmptyBatchError,
    MissingParameterError,
    NoMappableColumnsError,
)
from pysqlsynth.formation.crud import IdentityType
from pysqlsynth.formation.joins import Filter
from pysqlsynth.formation.paging import AggregateFunction
from pysqlsynth.formation.predicates import join
from tests.northwind import Category, Customer, Product, Region, Territory
from tests.recording import RecordingConnection, RecordingContext, scalar


class DriverError(Exception):
    "Stands in for an error raised by a database driver."


class TestContext(unittest.IsolatedAsyncioTestCase):
    connection: RecordingConnection
    conn: RecordingContext

    async def asyncSetUp(self) -> None:
        self.connection = RecordingConnection(
            MSSQLGenerator(GeneratorOptions()), ConnectionParameters()
        )
        self.conn = typing.cast(RecordingContext, await self.connection.open())

    async def asyncTearDown(self) -> None:
        await self.connection.close()

    async def test_query(self) -> None:
        self.conn.results.append([[("ProductID", 1)]])
        rows = await self.conn.query(
            "SELECT ProductID FROM Products WHERE CategoryID = @CategoryID",
            {"@CategoryID": 1},
        )
        self.assertEqual(rows, [[("ProductID", 1)]])
        self.assertEqual(
            self.conn.statements,
            [
                (
                    "SELECT ProductID FROM Products WHERE CategoryID = @CategoryID",
                    {"CategoryID": 1},
                )
            ],
        )

    async def test_empty_statement(self) -> None:
        with self.assertRaises(ValueError):
            await self.conn.query("")
        with self.assertRaises(ValueError):
            await self.conn.execute_scalar(" ")

    async def test_parameterized_query(self) -> None:
        self.conn.results.append(
            [[("ProductID", 1), ("CategoryID", 1), ("CategoryID", 1)]]
        )
        rows = await self.conn.parameterized_query(
            "SELECT p.ProductID, p.CategoryID, c.CategoryID FROM Products p "
            "JOIN Categories c ON p.CategoryID = c.CategoryID WHERE p.ProductID = @ProductID",
            {"ProductID": 1},
        )
        self.assertEqual(rows, [{"ProductID": 1, "CategoryID": 1, "CategoryID_3": 1}])

    async def test_parameterized_query_checks(self) -> None:
        sql = "SELECT * FROM Products WHERE ProductID = @ProductID"
        with self.assertRaises(MissingParameterError):
            await self.conn.parameterized_query(sql)
        with self.assertRaises(MissingParameterError):
            await self.conn.parameterized_query(sql, {"ProductID": 1, "CategoryID": 2})
        self.assertEqual(self.conn.statements, [])

    async def test_parameterized_query_as(self) -> None:
        self.conn.results.append(
            [[("CustomerID", "ALFKI"), ("CompanyName", "Alfreds Futterkiste"), ("PhoneNumber", None)]]
        )
        customers = await self.conn.parameterized_query_as(
            Customer,
            "SELECT * FROM dbo.Customers WHERE CustomerID = @CustomerID",
            {"CustomerID": "ALFKI"},
        )
        self.assertEqual(customers, [Customer("ALFKI", "Alfreds Futterkiste")])

    async def test_parameterized_like(self) -> None:
        await self.conn.parameterized_like(
            "SELECT * FROM Products WHERE ProductName LIKE @SearchTerm", "100%"
        )
        self.assertEqual(self.conn.statements[0][1], {"SearchTerm": "%100[%]%"})

        await self.conn.parameterized_like(
            "SELECT * FROM Products WHERE ProductName LIKE @Name", "Chai", "Name"
        )
        self.assertEqual(self.conn.statements[1][1], {"Name": "%Chai%"})

    async def test_parameterized_like_empty(self) -> None:
        with self.assertLogs("pysqlsynth", level="WARNING"):
            rows = await self.conn.parameterized_like(
                "SELECT * FROM Products WHERE ProductName LIKE @SearchTerm", ""
            )
        self.assertEqual(rows, [])
        self.assertEqual(self.conn.statements, [])

    async def test_get_page(self) -> None:
        self.conn.results.append(
            [[("ProductID", 11), ("ProductName", "Queso Cabrales")]]
        )
        products = await self.conn.get_page(
            Product, lambda p: p.ProductID, "SELECT ProductID, ProductName FROM Products", 1, 10
        )
        self.assertEqual(products, [Product(ProductID=11, ProductName="Queso Cabrales")])
        statement, parameters = self.conn.statements[0]
        self.assertTrue(statement.endswith("ORDER BY ProductID ASC OFFSET @Skip ROWS FETCH NEXT @Next ROWS ONLY"))
        self.assertEqual(parameters, {"Skip": 10, "Next": 10})

    async def test_get_page_rows(self) -> None:
        self.conn.results.append([[("ProductID", 1)]])
        rows = await self.conn.get_page(
            None, "ProductID", "SELECT ProductID FROM Products", 0, 1
        )
        self.assertEqual(rows, [{"ProductID": 1}])

    async def test_get_page_invalid(self) -> None:
        self.assertIsNone(
            await self.conn.get_page(Product, "ProductID", "", 0, 10)
        )
        self.assertEqual(self.conn.statements, [])

    async def test_get_aggregate(self) -> None:
        self.conn.results.append(
            [[("Value", 12), ("CategoryID", 1)], [("Value", 13), ("CategoryID", 2)]]
        )
        rows = await self.conn.get_aggregate(
            Product, AggregateFunction.COUNT, group_by=[lambda p: p.CategoryID]
        )
        self.assertEqual(
            rows, [{"Value": 12, "CategoryID": 1}, {"Value": 13, "CategoryID": 2}]
        )
        self.assertEqual(
            self.conn.statements[0][0],
            "select count(*) as Value,CategoryID from Products\ngroup by CategoryID",
        )

    async def test_query_join(self) -> None:
        self.conn.results.append(
            [
                [
                    ("ProductID", 1),
                    ("ProductName", "Chai"),
                    ("SupplierID", 1),
                    ("CategoryID", 1),
                    ("UnitPrice", Decimal("18.00")),
                    ("Discontinued", False),
                    ("CategoryID", 1),
                    ("CategoryName", "Beverages"),
                    ("Description", None),
                ]
            ]
        )
        rows = await self.conn.query_join(
            [join(Product, Category, lambda p, c: p.CategoryID == c.CategoryID)],
            [Filter("CategoryName = @CategoryName", Category, {"CategoryName": "Beverages"})],
        )
        self.assertEqual(rows[0]["CategoryID"], 1)
        self.assertEqual(rows[0]["CategoryID_t2"], 1)
        self.assertEqual(rows[0]["CategoryName"], "Beverages")
        self.assertEqual(self.conn.statements[0][1], {"CategoryName": "Beverages"})

    async def test_query_filtered(self) -> None:
        self.conn.results.append([[("CategoryID", 1), ("CategoryName", "Beverages")]])
        categories = await self.conn.query_filtered(
            Category, [Filter("CategoryID = @CategoryID", Category, {"CategoryID": 1})]
        )
        self.assertEqual(categories, [Category(1, "Beverages")])

    async def test_insert(self) -> None:
        self.conn.results.append(scalar(77))
        product = Product(ProductName="Original Frankfurter", CategoryID=2)
        key = await self.conn.insert(product)
        self.assertEqual(key, 77)
        self.assertEqual(product.ProductID, 77)

        statement, parameters = self.conn.statements[0]
        self.assertTrue(statement.endswith("SELECT CAST(SCOPE_IDENTITY() AS int)"))
        self.assertEqual(parameters["ProductName"], "Original Frankfurter")
        self.assertNotIn("ProductID", parameters)

    async def test_insert_converts_key(self) -> None:
        self.conn.results.append(scalar(Decimal(78)))
        product = Product(ProductName="Chai")
        await self.conn.insert(product)
        self.assertEqual(product.ProductID, 78)
        self.assertIs(type(product.ProductID), int)

        guid = uuid.uuid4()
        self.conn.results.append(scalar(str(guid)))
        territory = Territory(TerritoryDescription="Westboro")
        await self.conn.insert(territory, IdentityType.UNIQUE_IDENTIFIER)
        self.assertEqual(territory.TerritoryGuid, guid)
        self.assertIn("OUTPUT INSERTED.TerritoryGuid", self.conn.statements[1][0])

    async def test_insert_no_value(self) -> None:
        product = Product(ProductName="Chai")
        self.assertIsNone(await self.conn.insert(product))
        self.assertIsNone(product.ProductID)

    async def test_insert_write_back_failure(self) -> None:
        self.conn.results.append(scalar(5))
        region = Region(RegionDescription="Eastern")
        with self.assertLogs("pysqlsynth", level="WARNING"):
            key = await self.conn.insert(region)
        self.assertEqual(key, 5)
        self.assertIsNone(region.RegionID)

    async def test_insert_many(self) -> None:
        self.conn.results.extend([[[("CategoryID", 9)]], [], [[("CategoryID", 11)]]])
        categories = [Category(CategoryName=name) for name in ["Snacks", "Tea", "Coffee"]]
        keys = await self.conn.insert_many(Category, categories)
        self.assertEqual(keys, [9, 11])
        self.assertEqual([c.CategoryID for c in categories], [9, None, 11])
        self.assertEqual(self.conn.events, ["begin", "commit"])
        self.assertEqual(len(self.conn.statements), 3)
        self.assertEqual(
            [parameters["CategoryName"] for _, parameters in self.conn.statements],
            ["Snacks", "Tea", "Coffee"],
        )

    async def test_insert_many_rollback(self) -> None:
        error = DriverError("violation of unique key constraint")
        self.conn.results.extend([[[("CategoryID", 9)]], error])
        with self.assertRaises(DriverError) as cm:
            await self.conn.insert_many(
                Category, [Category(CategoryName="Snacks"), Category(CategoryName="Snacks")]
            )
        self.assertIs(cm.exception, error)
        self.assertEqual(self.conn.events, ["begin", "rollback"])

    async def test_insert_many_caller_transaction(self) -> None:
        self.conn.results.extend([[[("CategoryID", 9)]], scalar(1)])
        async with self.conn.transaction():
            self.assertTrue(self.conn.in_transaction)
            await self.conn.insert_many(Category, [Category(CategoryName="Snacks")])
            self.assertTrue(self.conn.in_transaction)
            await self.conn.update(Category(CategoryID=9, CategoryName="Chips"))
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.conn.events, ["begin", "commit"])
        self.assertEqual(len(self.conn.statements), 2)

    async def test_nested_transaction_rollback(self) -> None:
        error = DriverError("deadlock victim")
        self.conn.results.extend([scalar(2), error])
        with self.assertRaises(DriverError):
            async with self.conn.transaction():
                await self.conn.update_many(
                    Product, [Product(ProductID=1), Product(ProductID=2)], {"Discontinued": True}
                )
                await self.conn.update_many(
                    Product, [Product(ProductID=3)], {"Discontinued": True}
                )
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.conn.events, ["begin", "rollback"])

        self.conn.results.append(scalar(1))
        await self.conn.update_many(Product, [Product(ProductID=4)], {"Discontinued": True})
        self.assertEqual(self.conn.events, ["begin", "rollback", "begin", "commit"])

    async def test_insert_many_invalid(self) -> None:
        with self.assertRaises(EmptyBatchError):
            await self.conn.insert_many(Category, [])
        with self.assertRaises(BatchTooLargeError):
            await self.conn.insert_many(
                Category, [Category(CategoryName=str(k)) for k in range(1001)]
            )
        with self.assertRaises(TypeError):
            await self.conn.insert_many(Category, [Product()])  # type: ignore[list-item]
        self.assertEqual(self.conn.statements, [])
        self.assertEqual(self.conn.events, [])

    async def test_update(self) -> None:
        self.conn.results.append(scalar(1))
        count = await self.conn.update(Product(ProductID=1, ProductName="Chai"))
        self.assertEqual(count, 1)
        self.assertTrue(self.conn.statements[0][0].startswith("UPDATE Products\nSET "))

    async def test_update_no_key(self) -> None:
        with self.assertRaises(NoMappableColumnsError):
            await self.conn.update(Product(ProductName="Chai"))
        self.assertEqual(self.conn.statements, [])

    async def test_update_many(self) -> None:
        self.conn.results.append(scalar(2))
        count = await self.conn.update_many(
            Product, [Product(ProductID=1), Product(ProductID=2)], {"Discontinued": True}
        )
        self.assertEqual(count, 2)
        self.assertEqual(self.conn.events, ["begin", "commit"])
        self.assertEqual(
            self.conn.statements[0][1],
            {"Discontinued": True, "ProductID__0": 1, "ProductID__1": 2},
        )

    async def test_delete(self) -> None:
        self.conn.results.append(scalar(0))
        self.assertEqual(await self.conn.delete(Product(ProductID=999)), 0)
        self.assertEqual(
            self.conn.statements[0],
            (
                "DELETE FROM Products\nWHERE ProductID = @ProductID;\nSELECT @@ROWCOUNT",
                {"ProductID": 999},
            ),
        )


if __name__ == "__main__":
    unittest.main()
