"""
Reorder forecasting: pure formulas, lead time resolution and reports built
from recorded sales.
"""

from datetime import timedelta

import pytest

from stockroom.errors import PermissionDeniedError, ValidationError
from stockroom.services import forecast_service, sales_service
from stockroom.time_utils import utcnow


class TestComputeForecast:
    def test_empty_shelf_with_steady_sales_is_urgent(self):
        forecast = forecast_service.compute_forecast(
            current_stock=0,
            units_sold=60,
            window_days=30,
            lead_time_days=5,
        )
        assert forecast.average_daily_sales == pytest.approx(2.0)
        assert forecast.reorder_point == pytest.approx(10.0)
        assert forecast.status == forecast_service.STATUS_URGENT
        assert forecast.days_until_stockout == 0

    def test_no_sales_means_no_stockout_estimate(self):
        forecast = forecast_service.compute_forecast(
            current_stock=40,
            units_sold=0,
            window_days=14,
            lead_time_days=7,
        )
        assert forecast.average_daily_sales == 0
        assert forecast.days_until_stockout is None
        assert forecast.suggested_reorder_quantity == 0

    def test_days_until_stockout_is_stock_over_velocity(self):
        forecast = forecast_service.compute_forecast(
            current_stock=25,
            units_sold=21,
            window_days=7,
            lead_time_days=2,
        )
        assert forecast.average_daily_sales == pytest.approx(3.0)
        assert forecast.days_until_stockout == pytest.approx(25 / 3.0)

    def test_suggested_quantity_covers_reorder_cycle(self):
        forecast = forecast_service.compute_forecast(
            current_stock=5,
            units_sold=30,
            window_days=30,
            lead_time_days=3,
            reorder_cycle_days=14,
            unit_cost_cents=250,
        )
        # 1/day * 14 days - 5 on hand
        assert forecast.suggested_reorder_quantity == 9
        assert forecast.estimated_reorder_cost_cents == 9 * 250

    def test_non_positive_window_rejected(self):
        with pytest.raises(forecast_service.ForecastValidationError):
            forecast_service.compute_forecast(current_stock=1, units_sold=1, window_days=0, lead_time_days=1)


class TestClassifyStockStatus:
    def test_at_reorder_point_is_urgent(self):
        assert forecast_service.classify_stock_status(10, 10.0) == forecast_service.STATUS_URGENT

    def test_within_multiplier_is_reorder_soon(self):
        assert forecast_service.classify_stock_status(15, 10.0, 1.5) == forecast_service.STATUS_REORDER_SOON

    def test_above_multiplier_is_ok(self):
        assert forecast_service.classify_stock_status(16, 10.0, 1.5) == forecast_service.STATUS_OK


def test_best_unit_cost_prefers_cost_then_wholesale_then_retail():
    assert forecast_service.best_unit_cost_cents(100, 200, 300) == 100
    assert forecast_service.best_unit_cost_cents(None, 200, 300) == 200
    assert forecast_service.best_unit_cost_cents(None, None, 300) == 300
    assert forecast_service.best_unit_cost_cents() == 0


def test_summary_splits_and_totals():
    urgent = forecast_service.compute_forecast(
        current_stock=0, units_sold=30, window_days=30, lead_time_days=7, unit_cost_cents=100, product_id=1,
    )
    ok = forecast_service.compute_forecast(
        current_stock=500, units_sold=1, window_days=30, lead_time_days=7, product_id=2,
    )
    report = forecast_service.summarize_forecasts([urgent, ok], window_days=30, slow_moving_min_stock=10)

    assert report.counts == {
        forecast_service.STATUS_URGENT: 1,
        forecast_service.STATUS_REORDER_SOON: 0,
        forecast_service.STATUS_OK: 1,
    }
    assert report.total_reorder_quantity == urgent.suggested_reorder_quantity
    assert report.total_estimated_reorder_cost_cents == urgent.suggested_reorder_quantity * 100
    assert [f.product_id for f in report.high_velocity] == [1, 2]
    assert [f.product_id for f in report.slow_moving] == [2]


class TestLeadTimes:
    def test_product_override_beats_supplier_override(self, owner_ctx, supplier, make_product):
        product = make_product(supplier=supplier)
        forecast_service.set_lead_time(owner_ctx, scope="supplier", target_id=supplier.id, lead_time_days=9)
        assert forecast_service.resolve_lead_time_days(owner_ctx.business_id, product.id, supplier.id) == 9

        forecast_service.set_lead_time(owner_ctx, scope="product", target_id=product.id, lead_time_days=3)
        assert forecast_service.resolve_lead_time_days(owner_ctx.business_id, product.id, supplier.id) == 3

    def test_falls_back_to_business_default(self, owner_ctx, make_product):
        product = make_product()
        assert forecast_service.resolve_lead_time_days(owner_ctx.business_id, product.id) == 7

        forecast_service.update_forecasting_config(owner_ctx, default_lead_time_days=12)
        assert forecast_service.resolve_lead_time_days(owner_ctx.business_id, product.id) == 12

    def test_rejects_non_positive_days(self, owner_ctx, make_product):
        product = make_product()
        with pytest.raises(forecast_service.ForecastValidationError):
            forecast_service.set_lead_time(owner_ctx, scope="product", target_id=product.id, lead_time_days=0)

    def test_manager_cannot_configure(self, manager_ctx, make_product):
        product = make_product()
        with pytest.raises(PermissionDeniedError):
            forecast_service.set_lead_time(manager_ctx, scope="product", target_id=product.id, lead_time_days=4)

    def test_clear_reports_whether_anything_was_removed(self, owner_ctx, make_product):
        product = make_product()
        forecast_service.set_lead_time(owner_ctx, scope="product", target_id=product.id, lead_time_days=4)
        assert forecast_service.clear_lead_time(owner_ctx, scope="product", target_id=product.id) is True
        assert forecast_service.clear_lead_time(owner_ctx, scope="product", target_id=product.id) is False


class TestForecastReport:
    def test_sold_out_product_is_urgent(self, owner_ctx, main_branch, make_product):
        product = make_product(stock=60)
        now = utcnow()
        sales_service.record_sale(
            owner_ctx,
            branch_id=main_branch.id,
            lines=[{"product_id": product.id, "quantity": 60}],
            occurred_at=now - timedelta(days=1),
        )
        forecast_service.set_lead_time(owner_ctx, scope="product", target_id=product.id, lead_time_days=5)

        report = forecast_service.build_forecast_report(owner_ctx, window_days=30, as_of=now)

        assert len(report.forecasts) == 1
        forecast = report.forecasts[0]
        assert forecast.current_stock == 0
        assert forecast.average_daily_sales == pytest.approx(2.0)
        assert forecast.reorder_point == pytest.approx(10.0)
        assert forecast.days_until_stockout == 0
        assert forecast.status == forecast_service.STATUS_URGENT
        assert report.urgent == [forecast]

    def test_sales_outside_window_are_ignored(self, owner_ctx, main_branch, make_product):
        product = make_product(stock=50)
        now = utcnow()
        sales_service.record_sale(
            owner_ctx,
            branch_id=main_branch.id,
            lines=[{"product_id": product.id, "quantity": 20}],
            occurred_at=now - timedelta(days=10),
        )

        forecast = forecast_service.forecast_product(owner_ctx, product.id, window_days=7, as_of=now)
        assert forecast.average_daily_sales == 0
        assert forecast.days_until_stockout is None

        forecast = forecast_service.forecast_product(owner_ctx, product.id, window_days=14, as_of=now)
        assert forecast.average_daily_sales == pytest.approx(20 / 14)

    def test_report_is_read_only(self, owner_ctx, make_product):
        product = make_product(stock=7)
        forecast_service.build_forecast_report(owner_ctx, window_days=7)
        assert product.stock == 7

    def test_manager_sees_only_home_branch(self, manager_ctx, east_branch, make_product):
        make_product("Beans", "BEANS")
        make_product("Oil", "OIL", branch=east_branch)

        report = forecast_service.build_forecast_report(manager_ctx, window_days=30)
        assert [f.sku for f in report.forecasts] == ["BEANS"]

        with pytest.raises(PermissionDeniedError):
            forecast_service.build_forecast_report(manager_ctx, branch_id=east_branch.id, window_days=30)

    def test_unsupported_window_rejected(self, owner_ctx):
        with pytest.raises(ValidationError):
            forecast_service.build_forecast_report(owner_ctx, window_days=45)

    def test_cashier_cannot_view(self, cashier_ctx):
        with pytest.raises(PermissionDeniedError):
            forecast_service.build_forecast_report(cashier_ctx, window_days=30)


def test_config_update_validates_and_persists(owner_ctx):
    settings = forecast_service.update_forecasting_config(owner_ctx, reorder_cycle_days=21)
    assert settings.reorder_cycle_days == 21
    assert forecast_service.get_forecast_settings(owner_ctx.business_id).reorder_cycle_days == 21

    with pytest.raises(forecast_service.ForecastValidationError):
        forecast_service.update_forecasting_config(owner_ctx, reorder_soon_multiplier=0.5)
    with pytest.raises(forecast_service.ForecastValidationError):
        forecast_service.update_forecasting_config(owner_ctx, bogus=1)
