"""
Tests para el motor de cálculo de costos de importación.
"""
import pytest
from cotizador.services.calculation_engine import (
    ImportCostCalculationEngine,
    CalculationInput,
    ProductData,
    VariantData,
    DynamicValues,
    TaxPercentage,
    Exemptions,
    EstimationFactors,
    CommercialTotals,
    round_money,
)
from cotizador.services.response_builder import build_response_dto
from cotizador.services.service_types import (
    DutyRegime,
    ServiceType,
    get_service_config,
)


def product(price, quantity, product_id="p", **kwargs):
    return ProductData(
        product_id=product_id,
        name=f"Producto {product_id}",
        variants=[VariantData(variant_id=f"{product_id}-v", quantity=quantity, price=price)],
        **kwargs
    )


def taxes(**overrides):
    values = dict(ad_valorem_rate=4, igv_rate=16, ipm_rate=2, percepcion_rate=3.5, isc_rate=0)
    values.update(overrides)
    return TaxPercentage(**values)


class TestRoundMoney:
    """Redondeo comercial."""

    def test_half_up(self):
        assert round_money(10.3168) == 10.32
        assert round_money(1.2896) == 1.29
        assert round_money(2.675) == 2.68
        assert round_money(0.125) == 0.13

    def test_places(self):
        assert round_money(1.23456, 4) == 1.2346
        assert round_money(33.5, 0) == 34


class TestCommercialAggregator:
    """Agregado comercial de productos y variantes cotizados."""

    def test_sums_quoted_variants(self):
        products = [
            ProductData(product_id="a", variants=[
                VariantData(quantity=3, price=10),
                VariantData(quantity=2, price=5),
            ]),
            product(20, 1, "b"),
        ]
        totals = ImportCostCalculationEngine.aggregate_commercial(products, EstimationFactors())

        # 3*10 + 2*5 + 1*20 = 60
        assert totals.comercial_value == 60
        assert totals.fob == 60
        assert totals.total_quantity == 6
        assert totals.cajas == 6

    def test_non_quoted_items_excluded(self):
        products = [
            ProductData(product_id="a", variants=[
                VariantData(quantity=3, price=10),
                VariantData(quantity=50, price=100, is_quoted=False),
            ]),
            ProductData(product_id="b", is_quoted=False, variants=[
                VariantData(quantity=5, price=1000),
            ], peso_kg=500),
        ]
        totals = ImportCostCalculationEngine.aggregate_commercial(products, EstimationFactors())

        assert totals.comercial_value == 30
        assert totals.total_quantity == 3
        assert totals.kg == pytest.approx(30)

    def test_estimation_factors(self):
        factors = EstimationFactors(peso_por_unidad_kg=10, volumen_por_unidad_cbm=0.1)
        totals = ImportCostCalculationEngine.aggregate_commercial(
            [product(1, 3, "a"), product(1, 2, "b")], factors
        )

        # 5 unidades * 10 kg y 5 * 0.1 CBM
        assert totals.kg == pytest.approx(50)
        assert totals.ton == pytest.approx(0.05)
        assert totals.volumen_cbm == pytest.approx(0.5)

    def test_packing_data_replaces_estimation(self):
        factors = EstimationFactors(peso_por_unidad_kg=10, volumen_por_unidad_cbm=0.1)
        products = [
            product(1, 100, "a", cajas=4, peso_kg=250, volumen_cbm=1.5),
            product(1, 10, "b"),
        ]
        totals = ImportCostCalculationEngine.aggregate_commercial(products, factors)

        assert totals.cajas == 14
        assert totals.kg == pytest.approx(350)
        assert totals.volumen_cbm == pytest.approx(2.5)

    def test_no_quoted_variants_is_all_zero(self):
        totals = ImportCostCalculationEngine.aggregate_commercial([], EstimationFactors())
        assert totals == CommercialTotals()

    def test_overrides(self):
        derived = CommercialTotals(comercial_value=100, fob=100, kg=50, ton=0.05)

        synced = ImportCostCalculationEngine.apply_overrides(
            derived, DynamicValues(comercial_value=500, kg=2500)
        )
        assert synced.comercial_value == 500
        assert synced.fob == 500
        assert synced.ton == pytest.approx(2.5)

        explicit = ImportCostCalculationEngine.apply_overrides(
            derived, DynamicValues(comercial_value=500, fob=400, ton=3)
        )
        assert explicit.fob == 400
        assert explicit.ton == 3

        untouched = ImportCostCalculationEngine.apply_overrides(derived, DynamicValues())
        assert untouched == derived


class TestFiscalObligations:
    """CIF y obligaciones fiscales."""

    def test_cif(self):
        assert ImportCostCalculationEngine.calculate_cif(50, 10, 2) == 62

    def test_scenario_air_duties(self):
        """
        CIF 62, AD/VALOREM 4%, IGV 16% e IPM 2% sobre CIF + AD/VALOREM.
        """
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            62, get_service_config(ServiceType.CONSOLIDADO_EXPRESS), taxes(), Exemptions(), DynamicValues()
        )

        # AD/VALOREM = 62 * 4% = 2.48
        # IGV = 64.48 * 16% = 10.3168 -> 10.32
        # IPM = 64.48 * 2% = 1.2896 -> 1.29
        assert fiscal.ad_valorem == 2.48
        assert fiscal.igv == 10.32
        assert fiscal.ipm == 1.29
        assert fiscal.total_taxes == 14.09
        assert fiscal.total_exempted == 0

    def test_fiscal_obligations_exempt(self):
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            62,
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS),
            taxes(),
            Exemptions(obligaciones_fiscales=True),
            DynamicValues(),
        )

        assert fiscal.ad_valorem == 0
        assert fiscal.igv == 0
        assert fiscal.ipm == 0
        assert fiscal.antidumping.value == 0
        assert fiscal.total_taxes == 0
        assert fiscal.gross_total_taxes == 14.09
        assert fiscal.total_exempted == 14.09
        assert fiscal.gross["igv"] == 10.32

    def test_air_ignores_antidumping_isc_and_percepcion(self):
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            1000,
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS),
            taxes(isc_rate=10),
            Exemptions(),
            DynamicValues(antidumping_gobierno=2, antidumping_cantidad=100),
        )

        assert fiscal.antidumping.value == 0
        assert fiscal.isc == 0
        assert fiscal.percepcion == 0

    def test_maritime_cascade(self):
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            1100,
            get_service_config(ServiceType.CONSOLIDADO_MARITIMO),
            taxes(isc_rate=10),
            Exemptions(),
            DynamicValues(antidumping_gobierno=2, antidumping_cantidad=100),
        )

        # AD/VALOREM = 1100 * 4% = 44
        # antidumping = 2 * 100 = 200
        # ISC = (1100 + 44) * 10% = 114.4
        # base = 1100 + 44 + 200 + 114.4 = 1458.4
        # IGV = 233.344 -> 233.34, IPM = 29.168 -> 29.17
        # percepción = (1458.4 + 233.344 + 29.168) * 3.5% = 60.23192 -> 60.23
        assert fiscal.ad_valorem == 44
        assert fiscal.antidumping.value == 200
        assert fiscal.isc == pytest.approx(114.4)
        assert fiscal.igv_base == pytest.approx(1458.4)
        assert fiscal.igv == 233.34
        assert fiscal.ipm == 29.17
        assert fiscal.percepcion == 60.23
        assert fiscal.total_taxes == pytest.approx(681.14)

    def test_total_derechos_zeroes_maritime_duties(self):
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            1100,
            get_service_config(ServiceType.CONSOLIDADO_GRUPAL_MARITIMO),
            taxes(),
            Exemptions(total_derechos=True),
            DynamicValues(antidumping_gobierno=2, antidumping_cantidad=100),
        )

        assert fiscal.exempt is True
        assert fiscal.total_taxes == 0
        assert fiscal.percepcion == 0
        assert fiscal.gross_total_taxes > 0

    def test_missing_rates_are_zero(self):
        fiscal = ImportCostCalculationEngine.calculate_fiscal_obligations(
            62,
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS),
            TaxPercentage(ad_valorem_rate=None, igv_rate="", ipm_rate=-5),
            Exemptions(),
            DynamicValues(),
        )
        assert fiscal.total_taxes == 0


class TestServiceFees:
    """Servicios por tipo de servicio."""

    def test_subtotal_and_igv(self):
        values = DynamicValues(servicio_consolidado=150, separacion_carga=20.5, inspeccion_productos=30)
        services = ImportCostCalculationEngine.calculate_service_fees(
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS), values, Exemptions(), 16
        )

        # 150 + 20.5 + 30 = 200.5; IGV = 32.08
        assert services.subtotal_services == 200.5
        assert services.igv_services == round_money(200.5 * 16 / 100)
        assert services.total_services == pytest.approx(services.subtotal_services + services.igv_services)

    def test_only_applicable_fields(self):
        values = DynamicValues(servicio_consolidado=100, gestion_certificado=999, otros_servicios=999)
        services = ImportCostCalculationEngine.calculate_service_fees(
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS), values, Exemptions(), 16
        )

        assert "gestionCertificado" not in services.service_fields
        assert "otrosServicios" not in services.service_fields
        assert services.subtotal_services == 100

    def test_exemption_flags_zero_lines(self):
        values = DynamicValues(
            servicio_consolidado=300, inspeccion_productos=40,
            inspeccion_fabrica=60, otros_servicios=25
        )
        exemptions = Exemptions(servicio_consolidado_maritimo=True, servicio_inspeccion=True)
        services = ImportCostCalculationEngine.calculate_service_fees(
            get_service_config(ServiceType.CONSOLIDADO_MARITIMO), values, exemptions, 16
        )

        fields = services.service_fields
        assert fields["servicioConsolidado"] == 0
        assert fields["inspeccionProductos"] == 0
        assert fields["inspeccionFabrica"] == 0
        # otrosServicios no tiene bandera de exoneración
        assert fields["otrosServicios"] == 25
        assert services.subtotal_services == 25

        consolidado = services.lines[0]
        assert consolidado.exempt is True
        assert consolidado.raw_amount == 300

    def test_air_flag_does_not_affect_maritime(self):
        values = DynamicValues(servicio_consolidado=300)
        services = ImportCostCalculationEngine.calculate_service_fees(
            get_service_config(ServiceType.CONSOLIDADO_MARITIMO),
            values, Exemptions(servicio_consolidado_aereo=True), 16
        )
        assert services.service_fields["servicioConsolidado"] == 300

    def test_first_purchase_waives_services(self):
        values = DynamicValues(servicio_consolidado=300, separacion_carga=50)
        services = ImportCostCalculationEngine.calculate_service_fees(
            get_service_config(ServiceType.CONSOLIDADO_EXPRESS), values, Exemptions(), 16,
            es_primera_compra=True
        )
        assert services.total_services == 0


class TestImportCostAllocator:
    """Prorrateo proporcional del costo de importación."""

    def test_equal_totals_split_evenly(self):
        """
        Dos productos de 500 con costos de importación de 200.
        Cada uno recibe 50% sin importar su cantidad.
        """
        products = [product(100, 5, "a"), product(50, 10, "b")]
        costings, totals = ImportCostCalculationEngine.allocate_import_costs(products, 200)

        a, b = costings
        assert a.equivalence == 50
        assert b.equivalence == 50
        assert a.import_costs == 100
        assert b.import_costs == 100
        # (500 + 100) / 5 = 120 y (500 + 100) / 10 = 60
        assert a.unit_cost == 120
        assert b.unit_cost == 60
        assert totals.total_import_costs == 200
        assert totals.total_cost == 1200
        assert totals.total_quantity == 15
        assert totals.rounding_difference == 0

    def test_factor_m(self):
        costings, totals = ImportCostCalculationEngine.allocate_import_costs(
            [product(100, 5, "a"), product(50, 10, "b")], 200
        )
        # 120 / 100
        assert totals.factor_m == 1.2

    def test_conservation(self):
        products = [product(333.33, 1, "a"), product(333.33, 1, "b"), product(333.34, 1, "c")]
        costings, totals = ImportCostCalculationEngine.allocate_import_costs(products, 100)

        allocated = sum(c.import_costs for c in costings)
        assert allocated == pytest.approx(100, abs=0.01 * len(products))
        assert sum(c.equivalence for c in costings) == pytest.approx(100)
        assert abs(totals.rounding_difference) <= 0.01 * len(products)

    def test_equivalence_display(self):
        costings, _ = ImportCostCalculationEngine.allocate_import_costs(
            [product(1, 1, "a"), product(2, 1, "b")], 30
        )
        assert costings[0].equivalence_display == 33
        assert costings[1].equivalence_display == 67
        # La proporción sin redondear alimenta el costo de importación
        assert costings[0].import_costs == 10

    def test_equivalence_display_in_dto(self):
        result = ImportCostCalculationEngine.calculate_full_response(CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(1, 1, "a"), product(2, 1, "b")],
        ))
        pricing = [p["pricing"] for p in build_response_dto(result)["products"]]

        assert [p["equivalenceDisplay"] for p in pricing] == [33, 67]
        assert pricing[0]["equivalence"] == pytest.approx(100 / 3)

    def test_zero_quantity_unit_cost(self):
        costings, _ = ImportCostCalculationEngine.allocate_import_costs([product(10, 0, "a")], 50)
        assert costings[0].unit_cost == 0
        assert costings[0].equivalence == 0

    def test_variants_inherit_product_unit_cost(self):
        p = ProductData(product_id="a", variants=[
            VariantData(variant_id="v1", quantity=2, price=10),
            VariantData(variant_id="v2", quantity=8, price=40),
            VariantData(variant_id="v3", quantity=5, price=99, is_quoted=False),
        ])
        costings, _ = ImportCostCalculationEngine.allocate_import_costs([p], 70)

        costing = costings[0]
        # (20 + 320 + 70) / 10 = 41
        assert costing.unit_cost == 41
        assert costing.variants[0].unit_cost == 41
        assert costing.variants[1].unit_cost == 41
        assert costing.variants[2].unit_cost == 0

    def test_non_quoted_product_gets_nothing(self):
        products = [product(100, 1, "a"), product(100, 1, "b", is_quoted=False)]
        costings, _ = ImportCostCalculationEngine.allocate_import_costs(products, 40)

        assert costings[0].import_costs == 40
        assert costings[1].import_costs == 0
        assert costings[1].equivalence == 0


class TestFullResponse:
    """Cascada completa por tipo de servicio."""

    def test_maritime_scenario(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(10, 5)],
            dynamic_values=DynamicValues(flete=10, seguro=2),
            tax_percentage=taxes(),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        assert result.regime == DutyRegime.MARITIMO
        assert result.cif == 62
        assert result.fiscal_obligations.ad_valorem == 2.48
        assert result.fiscal_obligations.igv == 10.32
        assert result.fiscal_obligations.ipm == 1.29
        # percepción = (64.48 + 10.3168 + 1.2896) * 3.5% = 2.663 -> 2.66
        assert result.fiscal_obligations.percepcion == 2.66
        assert result.import_costs.expense_fields["totalDerechos"] == pytest.approx(16.75)

    def test_express_under_threshold_is_exempt(self):
        """Consolidado Express con valor comercial 150 queda exonerado."""
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_EXPRESS,
            products=[product(30, 5)],
            dynamic_values=DynamicValues(flete=20, seguro=5, servicio_consolidado=100),
            tax_percentage=taxes(),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        assert result.exemptions.obligaciones_fiscales is True
        assert result.regime == DutyRegime.EXPRESS_PERSONAL
        assert result.fiscal_obligations.total_taxes == 0
        assert result.summary.tax_exempt is True
        assert len(result.summary.banners) == 1

        fields = result.import_costs.expense_fields
        assert "addvaloremigvipm" not in fields
        assert fields["fleteInternacional"] == 20
        # 100 + IGV 16 + flete 20 + desaduanaje 0
        assert result.import_costs.total_expenses == 136
        assert result.summary.total_investment == 286

    def test_express_simplified(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_EXPRESS,
            products=[product(40, 10)],
            dynamic_values=DynamicValues(flete=40, seguro=5, desaduanaje=15, servicio_consolidado=100),
            tax_percentage=taxes(),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        # CIF = 445; AD/VALOREM 17.8; IGV 74.05; IPM 9.26
        assert result.regime == DutyRegime.EXPRESS_SIMPLIFICADA
        fields = result.import_costs.expense_fields
        assert fields["addvaloremigvipm"] == pytest.approx(101.11)
        assert fields["desadunajefleteseguro"] == 60
        assert result.import_costs.total_expenses == pytest.approx(277.11)
        assert result.summary.total_investment == pytest.approx(677.11)

    def test_grupal_express_rules(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_GRUPAL_EXPRESS,
            products=[product(100, 10)],
            dynamic_values=DynamicValues(
                flete=50, seguro=10, servicio_consolidado=200,
                inspeccion_productos=80, seguro_productos=30
            ),
            tax_percentage=taxes(),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        services = result.service_calculations
        assert services.service_fields["inspeccionProductos"] == 0
        assert services.subtotal_services == 230

        composite = next(
            line for line in result.import_costs.lines if line.key == "addvaloremigvipm"
        )
        assert composite.descuento is True
        assert composite.gross_amount == result.fiscal_obligations.total_taxes
        assert composite.amount == pytest.approx(composite.gross_amount / 2, abs=0.01)
        assert result.exemptions.descuento_grupal_express is True
        assert result.import_costs.expense_fields["fleteInternacional"] == 50

    def test_maritime_freight_from_rate(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(10, 100)],
            dynamic_values=DynamicValues(flete=999, calculo_flete=50),
            factors=EstimationFactors(peso_por_unidad_kg=10, volumen_por_unidad_cbm=0.1),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        # ton = 1, CBM = 10 -> flete = 10 * 50
        assert result.flete == 500
        assert result.cif == 1500

    def test_air_uses_entered_freight(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_EXPRESS,
            products=[product(10, 100)],
            dynamic_values=DynamicValues(flete=80, calculo_flete=50),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)
        assert result.flete == 80

    def test_first_purchase(self):
        base = dict(
            service_type=ServiceType.CONSOLIDADO_EXPRESS,
            products=[product(40, 10)],
            dynamic_values=DynamicValues(flete=40, seguro=5, servicio_consolidado=100),
            tax_percentage=taxes(),
        )
        regular = ImportCostCalculationEngine.calculate_full_response(CalculationInput(**base))
        first = ImportCostCalculationEngine.calculate_full_response(
            CalculationInput(es_primera_compra=True, **base)
        )

        assert first.service_calculations.total_services == 0
        assert first.import_costs.expense_fields["addvaloremigvipm"] == pytest.approx(
            regular.import_costs.expense_fields["addvaloremigvipm"] / 2, abs=0.01
        )
        assert first.summary.total_investment < regular.summary.total_investment

    def test_allocation_uses_total_expenses(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(100, 5, "a"), product(50, 10, "b")],
            dynamic_values=DynamicValues(flete=100, seguro=10, servicio_consolidado=250),
            tax_percentage=taxes(),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        allocated = sum(p.import_costs for p in result.products)
        assert allocated == pytest.approx(result.import_costs.total_expenses, abs=0.02)

    def test_summary_identity(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_GRUPAL_MARITIMO,
            products=[product(12.5, 40, "a"), product(7.25, 12, "b")],
            dynamic_values=DynamicValues(
                flete=120, seguro=15, servicio_consolidado=350, gestion_certificado=45,
                transporte_local=60, antidumping_gobierno=0.5, antidumping_cantidad=52,
                tipo_cambio=3.75
            ),
            tax_percentage=taxes(isc_rate=2),
        )
        summary = ImportCostCalculationEngine.calculate_full_response(data).summary

        assert summary.total_investment == pytest.approx(summary.comercial_value + summary.total_expenses)
        assert summary.total_investment_soles == pytest.approx(summary.total_investment * 3.75, abs=0.01)

    def test_zero_products(self):
        data = CalculationInput(service_type=ServiceType.CONSOLIDADO_MARITIMO)
        result = ImportCostCalculationEngine.calculate_full_response(data)

        assert result.summary.comercial_value == 0
        assert result.fiscal_obligations.total_taxes == 0
        assert result.products == ()
        assert result.allocation_totals.total_import_costs == 0

    def test_commercial_value_override(self):
        data = CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(10, 10)],
            dynamic_values=DynamicValues(comercial_value=250),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)

        assert result.summary.comercial_value == 250
        assert result.dynamic_values.fob == 250
        assert result.products[0].total == 100

    def test_garbage_input_does_not_raise(self):
        data = CalculationInput(
            service_type="Consolidado Marítimo",
            products=[ProductData(variants=[VariantData(quantity="abc", price=None)])],
            dynamic_values=DynamicValues(flete="", seguro=float("nan"), servicio_consolidado=-20),
        )
        result = ImportCostCalculationEngine.calculate_full_response(data)
        assert result.summary.total_investment >= 0


class TestEngineProperties:
    """Propiedades generales de la cascada."""

    @staticmethod
    def sample_input(exemptions=None):
        return CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=[product(19.99, 37, "a"), product(3.5, 120, "b"), product(250, 2, "c")],
            dynamic_values=DynamicValues(
                flete=310, seguro=22.4, servicio_consolidado=480, gestion_certificado=60,
                inspeccion_productos=90, inspeccion_fabrica=120, transporte_local=75,
                otros_servicios=33, antidumping_gobierno=1.2, antidumping_cantidad=40
            ),
            tax_percentage=taxes(isc_rate=5),
            exemptions=exemptions or Exemptions(),
        )

    def test_determinism(self):
        first = ImportCostCalculationEngine.calculate_full_response(self.sample_input())
        second = ImportCostCalculationEngine.calculate_full_response(self.sample_input())

        assert first == second
        assert build_response_dto(first) == build_response_dto(second)

    def test_resubmitting_returned_values_is_idempotent(self):
        """
        Reenviar los valores devueltos sin editarlos produce el mismo DTO.
        """
        products = [
            product(3.333, 3, "a", volumen_cbm=2.34567, peso_kg=1234.5678),
            product(7.4449, 11, "b"),
        ]
        first = ImportCostCalculationEngine.calculate_full_response(CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=products,
            dynamic_values=DynamicValues(calculo_flete=100, seguro=1.005, servicio_consolidado=50),
            tax_percentage=taxes(),
        ))
        second = ImportCostCalculationEngine.calculate_full_response(CalculationInput(
            service_type=ServiceType.CONSOLIDADO_MARITIMO,
            products=products,
            dynamic_values=first.dynamic_values,
            tax_percentage=taxes(),
        ))

        assert second.flete == first.flete
        assert second.cif == first.cif
        assert build_response_dto(second) == build_response_dto(first)

    def test_resubmitting_air_freight_is_idempotent(self):
        base = dict(
            service_type=ServiceType.CONSOLIDADO_EXPRESS,
            products=[product(12.345, 33, "a")],
            tax_percentage=taxes(),
        )
        first = ImportCostCalculationEngine.calculate_full_response(
            CalculationInput(dynamic_values=DynamicValues(flete=10.005, seguro=2), **base)
        )
        second = ImportCostCalculationEngine.calculate_full_response(
            CalculationInput(dynamic_values=first.dynamic_values, **base)
        )
        assert build_response_dto(second) == build_response_dto(first)

    def test_input_not_mutated(self):
        data = self.sample_input()
        ImportCostCalculationEngine.calculate_full_response(data)
        assert data.dynamic_values.comercial_value is None
        assert data.dynamic_values.cif is None
        assert data.exemptions == Exemptions()

    def test_non_negative_outputs(self):
        dto = build_response_dto(
            ImportCostCalculationEngine.calculate_full_response(self.sample_input())
        )

        def walk(node, path=""):
            if isinstance(node, dict):
                for key, value in node.items():
                    if key == "roundingDifference":
                        continue
                    walk(value, f"{path}.{key}")
            elif isinstance(node, list):
                for index, value in enumerate(node):
                    walk(value, f"{path}[{index}]")
            elif isinstance(node, (int, float)) and not isinstance(node, bool):
                assert node >= 0, path

        walk(dto)

    def test_every_exemption_zeroes_its_line(self):
        exemptions = Exemptions(
            servicio_consolidado_maritimo=True, gestion_certificado=True,
            servicio_inspeccion=True, transporte_local=True, total_derechos=True
        )
        result = ImportCostCalculationEngine.calculate_full_response(self.sample_input(exemptions))

        fields = result.service_calculations.service_fields
        for key in ("servicioConsolidado", "gestionCertificado", "inspeccionProductos",
                    "inspeccionFabrica", "transporteLocal"):
            assert fields[key] == 0, key
        assert result.fiscal_obligations.total_taxes == 0
        assert result.import_costs.expense_fields["totalDerechos"] == 0
        # Solo queda otrosServicios + IGV
        assert result.service_calculations.subtotal_services == 33


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
